"""
Command line entry point.

    pagesplit detect --image page.png [--template regions.json] [--config config.json]
    pagesplit sweep --image page.png --ideal regions.json [--mode quick|normal|thorough]
    pagesplit evaluate --pred detected.json --ideal regions.json
    pagesplit generate --save_image page.png --save_json regions.json [--seed 7]
"""

import argparse
import json
import logging
import os
import sys
from typing import List, Optional

from pagesplit.config import DetectionConfig, load_config
from pagesplit.detector import auto_detect_regions
from pagesplit.overlay import draw_overlay
from pagesplit.preprocessing import load_image, save_image
from pagesplit.region import CandidateRegion, TemplateRegion
from pagesplit.report import plot_top_scores, print_summary, save_best_config, save_report
from pagesplit.sweep import MODES, calculate_similarity_score, run_sweep
from pagesplit.synthetic import generate_synthetic_page, save_regions


def _load_regions(path: str) -> list:
    """Read a region list, or the `regions` field of a detection result."""
    with open(path) as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get('regions', [])
    return data


def _ensure_parent(path: str):
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _base_config(args) -> DetectionConfig:
    config = load_config(args.config) if args.config else DetectionConfig()
    overrides = {}
    if args.threshold is not None:
        overrides['threshold'] = args.threshold
    if args.min_region_size is not None:
        overrides['min_region_size'] = args.min_region_size
    if args.adherence is not None:
        overrides['template_adherence'] = args.adherence
    if args.no_overlap_check:
        overrides['prevent_overlap'] = False
    return config.with_overrides(**overrides) if overrides else config


def _read_image(path: str):
    try:
        return load_image(path)
    except ValueError as e:
        print(f"✗ {e}")
        return None


def cmd_detect(args) -> int:
    image = _read_image(args.image)
    if image is None:
        return 1
    templates = _load_regions(args.template) if args.template else []
    config = _base_config(args)

    result = auto_detect_regions(image, templates, config)
    if not result.success:
        print(f"✗ Detection failed: {result.error}")
        return 1

    meta = result.metadata
    print("=" * 60)
    print("REGION DETECTION")
    print("=" * 60)
    print(f"  Text areas found: {meta['textAreasFound']}")
    print(f"  Template regions: {meta['templateCount']} (used: {meta['usedTemplate']})")
    print(f"  Overlaps prevented: {meta['overlapsPrevented']}")
    print(f"  Regions: {len(result.regions)}")
    for r in result.regions:
        print(f"    {r.type:<14} ({r.x:g}, {r.y:g}) {r.width:g}x{r.height:g}  "
              f"conf={r.confidence:.2f}  [{r.source}]")

    if args.save_json:
        _ensure_parent(args.save_json)
        with open(args.save_json, 'w') as f:
            json.dump(result.to_dict(), f, indent=2)

    if args.save_overlay:
        _ensure_parent(args.save_overlay)
        save_image(draw_overlay(image, result.regions), args.save_overlay)

    return 0


def cmd_sweep(args) -> int:
    image = _read_image(args.image)
    if image is None:
        return 1
    ideal = _load_regions(args.ideal)
    if not ideal:
        print("✗ No ideal regions to compare against")
        return 1

    def progress(i, total, sweep_config):
        if args.verbose or i % 10 == 0:
            print(f"  [{i + 1}/{total}] {sweep_config.name}")

    report = run_sweep(image, ideal, mode=args.mode, base=_base_config(args),
                       scale=args.scale, progress=progress)
    print_summary(report, args.top)

    if args.save_report:
        save_report(report, args.save_report)
        print(f"✓ Saved report to {args.save_report}")
    if args.save_plot:
        plot_top_scores(report, args.save_plot, args.top)
    if args.save_best_config and save_best_config(report, args.save_best_config):
        print(f"✓ Saved best configuration to {args.save_best_config}")

    return 0 if report.successful > 0 else 1


def cmd_evaluate(args) -> int:
    detected = [CandidateRegion.from_dict(r) for r in _load_regions(args.pred)]
    ideal = [TemplateRegion.from_dict(r) for r in _load_regions(args.ideal)]
    score = calculate_similarity_score(ideal, detected)
    print(json.dumps(score.to_dict(), indent=2))
    return 0


def cmd_generate(args) -> int:
    image, regions = generate_synthetic_page(args.width, args.height, seed=args.seed)
    _ensure_parent(args.save_image)
    save_image(image, args.save_image)
    if args.save_json:
        _ensure_parent(args.save_json)
        save_regions(regions, args.save_json)
    print(f"✓ Generated {args.width}x{args.height} page with {len(regions)} regions")
    return 0


def _add_config_args(parser):
    parser.add_argument("--config", type=str, default=None, help="configuration JSON")
    parser.add_argument("--threshold", type=int, default=None)
    parser.add_argument("--min_region_size", type=int, default=None)
    parser.add_argument("--adherence", type=float, default=None, help="template adherence 0..1")
    parser.add_argument("--no_overlap_check", action="store_true")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pagesplit",
                                     description="Template-guided page region detection")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("detect", help="detect regions on one page")
    p.add_argument("--image", type=str, required=True)
    p.add_argument("--template", type=str, default=None, help="template regions JSON")
    p.add_argument("--save_json", type=str, default=None)
    p.add_argument("--save_overlay", type=str, default=None)
    _add_config_args(p)
    p.set_defaults(func=cmd_detect)

    p = sub.add_parser("sweep", help="rank configurations against ideal regions")
    p.add_argument("--image", type=str, required=True)
    p.add_argument("--ideal", type=str, required=True, help="ideal regions JSON")
    p.add_argument("--mode", type=str, choices=MODES, default="normal")
    p.add_argument("--scale", type=float, default=1.0,
                   help="display scale the ideal regions were drawn at")
    p.add_argument("--top", type=int, default=10)
    p.add_argument("--save_report", type=str, default=None)
    p.add_argument("--save_plot", type=str, default=None)
    p.add_argument("--save_best_config", type=str, default=None)
    _add_config_args(p)
    p.set_defaults(func=cmd_sweep)

    p = sub.add_parser("evaluate", help="score detected regions against ideal ones")
    p.add_argument("--pred", type=str, required=True)
    p.add_argument("--ideal", type=str, required=True)
    p.set_defaults(func=cmd_evaluate)

    p = sub.add_parser("generate", help="write a synthetic page and its regions")
    p.add_argument("--save_image", type=str, required=True)
    p.add_argument("--save_json", type=str, default=None)
    p.add_argument("--width", type=int, default=800)
    p.add_argument("--height", type=int, default=1000)
    p.add_argument("--seed", type=int, default=None)
    p.set_defaults(func=cmd_generate)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

"""
Batch analysis of images with the detector ensemble.

This module:
1. Collects images from files and directories
2. Builds and initializes the EnsembleDetector from a YAML config
3. Analyzes each image and writes one JSON line per image
4. Writes an aggregate summary

Usage:
    python -m stonefusion.analyze \
        --images scans/ \
        --config configs/ensemble_v1.yaml \
        --out runs/<run_id>
"""

import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import yaml
from PIL import Image
from tqdm import tqdm

from stonefusion.config import EnsembleConfig, load_config
from stonefusion.ensemble import EnsembleDetector, EnsembleResult
from stonefusion.errors import EnsembleError, ModelUnavailable
from stonefusion.utils.device import device_info

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = {".png", ".jpg", ".jpeg", ".bmp", ".tif", ".tiff"}


def collect_images(paths: list[Path]) -> list[Path]:
    """Expand directories into their image files (sorted), keep files as given."""
    images = []
    for path in paths:
        if path.is_dir():
            images.extend(
                sorted(p for p in path.iterdir() if p.suffix.lower() in IMAGE_EXTENSIONS)
            )
        else:
            images.append(path)
    return images


def summarize(records: list[dict[str, Any]]) -> dict[str, Any]:
    """Aggregate per-image records into run-level metrics."""
    succeeded = [r for r in records if r["status"] == "ok"]
    failed = [r for r in records if r["status"] != "ok"]
    detected = [r for r in succeeded if r["result"]["detected"]]

    summary = {
        "total_images": len(records),
        "analyzed": len(succeeded),
        "failed": len(failed),
        "detected": len(detected),
        "detection_rate": len(detected) / len(succeeded) if succeeded else 0.0,
        "mean_overall_confidence": (
            sum(r["result"]["overall_confidence"] for r in detected) / len(detected)
            if detected else 0.0
        ),
        "mean_elapsed_time": (
            sum(r["result"]["elapsed_time"] for r in succeeded) / len(succeeded)
            if succeeded else 0.0
        ),
        "failures": {r["image_path"]: r["error"] for r in failed},
    }
    return summary


async def analyze_images(
    engine: EnsembleDetector,
    images: list[Path],
    results_file: Path,
) -> list[dict[str, Any]]:
    """Analyze images one by one, streaming a JSON line per image."""
    records = []
    with open(results_file, "w") as f_out:
        for image_path in tqdm(images, desc="Analyzing"):
            record: dict[str, Any] = {"image_path": str(image_path)}
            try:
                with Image.open(image_path) as img:
                    image = img.copy()
            except Exception as e:
                logger.warning(f"Failed to load image {image_path}: {e}")
                record.update(status="error", error=f"unreadable image: {e}")
            else:
                try:
                    result: EnsembleResult = await engine.analyze(image)
                except EnsembleError as e:
                    logger.error(f"Analysis failed for {image_path}: {e}")
                    record.update(status="error", error=str(e))
                else:
                    record.update(status="ok", result=result.to_dict())

            records.append(record)
            f_out.write(json.dumps(record) + "\n")
    return records


async def run(config: EnsembleConfig, images: list[Path], out_dir: Path) -> dict[str, Any]:
    """Initialize the ensemble, analyze all images and write outputs."""
    out_dir.mkdir(parents=True, exist_ok=True)

    with open(out_dir / "ensemble_config.yaml", "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False)

    engine = EnsembleDetector.from_config(config)
    await engine.initialize()
    try:
        records = await analyze_images(engine, images, out_dir / "per_image.jsonl")
    finally:
        engine.cleanup()

    summary = summarize(records)
    summary["timestamp_utc"] = datetime.now(timezone.utc).isoformat()
    summary["detectors"] = [d.name for d in config.detectors]
    summary["device"] = device_info()

    with open(out_dir / "summary.json", "w") as f:
        json.dump(summary, f, indent=2)
    return summary


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    parser = argparse.ArgumentParser(
        description="Detect kidney stones with a fused detector ensemble",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--images",
        type=Path,
        nargs="+",
        required=True,
        help="Image files or directories of images",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("configs/ensemble_v1.yaml"),
        help="Path to ensemble configuration YAML",
    )
    parser.add_argument(
        "--out",
        type=Path,
        required=True,
        help="Output directory for results",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Limit number of images to analyze (for testing)",
    )

    args = parser.parse_args(argv)

    if not args.config.exists():
        logger.error(f"Config not found: {args.config}")
        return 1

    config = load_config(args.config)
    images = collect_images(args.images)
    if args.limit:
        images = images[:args.limit]
    if not images:
        logger.error("No images found")
        return 1

    logger.info(f"Found {len(images)} images")
    logger.info(f"Config: {args.config}")

    try:
        summary = asyncio.run(run(config, images, args.out))
    except ModelUnavailable as e:
        logger.error(f"Cannot start analysis: {e}")
        return 1

    print("\n" + "=" * 60)
    print("ANALYSIS SUMMARY")
    print("=" * 60)
    print(f"Total images:         {summary['total_images']}")
    print(f"Analyzed:             {summary['analyzed']}")
    print(f"Failed:               {summary['failed']}")
    print(f"Detection rate:       {summary['detection_rate']:.1%}")
    print(f"Mean confidence:      {summary['mean_overall_confidence']:.2f}")
    print(f"Mean time per image:  {summary['mean_elapsed_time']:.3f}s")
    print("=" * 60)

    return 0


if __name__ == "__main__":
    sys.exit(main())

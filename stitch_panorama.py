#!/usr/bin/env python3
"""
Cylindrical Panorama - Stitching Tool
=====================================

Stitches a directory of overlapping photographs, taken by a camera rotating
about a fixed axis, into a panorama. All four variants (color, equalized
color, grayscale, equalized grayscale) are produced and stacked vertically
for comparison.

Usage:
    python stitch_panorama.py --path ./lab5_data/lab/ --suffix bmp --fov 66
    python stitch_panorama.py --path ./dolomites --suffix png --direction l --detector orb --show
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List

import cv2
import numpy as np

from panoramic import DetectorType, Direction, PanoramaError, PanoramicImage, StitchConfig


def load_images(directory: str, suffix: str) -> List[np.ndarray]:
    """
    Load every image with the given extension, sorted by file name.

    Raises:
        FileNotFoundError: If the directory does not exist or holds no matching image
        IOError: If an image cannot be decoded
    """
    root = Path(directory)
    if not root.is_dir():
        raise FileNotFoundError(f"Image directory not found: {directory}")

    files = sorted(root.glob(f"*.{suffix.lstrip('.')}"))
    if not files:
        raise FileNotFoundError(f"No *.{suffix} images in {directory}")

    images = []
    for file in files:
        image = cv2.imread(str(file), cv2.IMREAD_COLOR)
        if image is None:
            raise IOError(f"Could not read image: {file}")
        images.append(image)
    return images


def build_config(args: argparse.Namespace) -> StitchConfig:
    """Config file values first, then explicit command line options."""
    config = StitchConfig.from_yaml(args.config) if args.config else StitchConfig()

    overrides = {}
    if args.fov is not None:
        overrides["half_fov_degrees"] = args.fov / 2
    if args.ratio is not None:
        overrides["dist_ratio"] = args.ratio
    if args.direction is not None:
        overrides["direction"] = Direction.parse(args.direction)
    if args.detector is not None:
        overrides["detector"] = DetectorType.parse(args.detector)
    return config.with_overrides(**overrides)


def parse_arguments(argv=None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Stitch overlapping photographs into a cylindrical panorama",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                                         # ./lab5_data/lab/*.bmp, 66 degree fov
  %(prog)s --path ./kitchen --suffix png --fov 54  # Different data set and camera
  %(prog)s --direction l                           # Images sorted right to left
  %(prog)s --detector orb --ratio 4                # Faster ORB features
  %(prog)s --config stitch.yaml --output pano.png  # Settings from YAML, save result

Output:
  The four variants are stacked top to bottom: color, equalized color,
  grayscale, equalized grayscale.
        """
    )

    parser.add_argument("-p", "--path", default="./lab5_data/lab/",
                        help="Directory containing the images")
    parser.add_argument("-s", "--suffix", default="bmp",
                        help="Image extension")
    parser.add_argument("-f", "--fov", type=float, default=None,
                        help="Field of view of the camera in degrees (default: 66)")
    parser.add_argument("-d", "--direction", choices=["l", "r"], default=None,
                        help="'r' for images sorted left to right, 'l' for right to left (default: r)")
    parser.add_argument("-r", "--ratio", type=float, default=None,
                        help="Keep matches below ratio times the minimum distance (default: 10)")
    parser.add_argument("--detector", choices=[d.value for d in DetectorType], default=None,
                        help="Feature detector (default: sift)")
    parser.add_argument("-c", "--config", default=None,
                        help="YAML file with stitching settings")
    parser.add_argument("-o", "--output", default=None,
                        help="Save the stacked comparison image to this file")
    parser.add_argument("--matches-dir", default=None,
                        help="Save the match visualization of every pair to this directory")
    parser.add_argument("--show", action="store_true",
                        help="Display the comparison and the first match image")
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Debug logging")

    return parser.parse_args(argv)


def main(argv=None) -> int:
    """Main entry point."""
    args = parse_arguments(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    print("🌄 Cylindrical Panorama Stitching")
    print("=" * 40)

    try:
        config = build_config(args)
        images = load_images(args.path, args.suffix)
        print(f"📂 Loaded {len(images)} images from {args.path}")

        panorama = PanoramicImage.from_config(images, config)
        draw = bool(args.show or args.matches_dir)
        results = panorama.get_all(draw=draw)
        comparison = cv2.vconcat(results)
        print(f"✅ Panorama size: {results[0].shape[1]}x{results[0].shape[0]}")

        if args.output:
            if not cv2.imwrite(args.output, comparison):
                raise IOError(f"Could not write {args.output}")
            print(f"💾 Saved comparison: {args.output}")

        if args.matches_dir:
            out_dir = Path(args.matches_dir)
            out_dir.mkdir(parents=True, exist_ok=True)
            for i, image in enumerate(panorama.match_images()):
                cv2.imwrite(str(out_dir / f"matches_{i:02d}_{i + 1:02d}.png"), image)
            print(f"💾 Saved {len(panorama.match_images())} match images to {out_dir}")

        if args.show:
            cv2.namedWindow(config.detector.name, cv2.WINDOW_NORMAL)
            cv2.imshow(config.detector.name, comparison)
            cv2.namedWindow(f"{config.detector.name} match example", cv2.WINDOW_NORMAL)
            cv2.imshow(f"{config.detector.name} match example", panorama.match_images()[0])
            cv2.waitKey()

        return 0

    except PanoramaError as e:
        print(f"\n💥 Stitching failed: {e}")
        return 1
    except OSError as e:
        print(f"\n💥 {e}")
        return 1
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted by user")
        return 1
    finally:
        if args.show:
            cv2.destroyAllWindows()
            cv2.waitKey(1)


if __name__ == "__main__":
    sys.exit(main())

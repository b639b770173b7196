"""
Main Entry Point for the license plate reader
"""

import argparse
import logging
import sys

import anpr_config
from anpr_system import ANPRSystem, ImageReadError, PlateReadTimeout
from ocr_engine import install_shutdown_hooks, terminate_engine


def build_parser():
    parser = argparse.ArgumentParser(description="License plate reader using edge analysis and Tesseract OCR")
    parser.add_argument("-i", "--image", help="Input image path")
    parser.add_argument("-d", "--directory", help="Input directory containing images")
    parser.add_argument("--model", default=anpr_config.MODEL_PATH, help="Optional trained plate detector model")
    parser.add_argument("--save-dir", help="Save result records under this directory")
    parser.add_argument("--debug-dir", help="Write intermediate processing images to this directory")
    parser.add_argument(
        "--timeout",
        type=float,
        default=anpr_config.READ_TIMEOUT,
        help="Deadline in seconds for one image (0 disables)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level",
    )
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    if not args.image and not args.directory:
        print("Please provide input: -i for image or -d for directory")
        parser.print_help()
        return 2

    install_shutdown_hooks()
    anpr = ANPRSystem(
        debug_dir=args.debug_dir,
        model_path=args.model,
        timeout=args.timeout,
        save_dir=args.save_dir,
    )

    try:
        if args.image:
            try:
                result = anpr.process_image(args.image)
            except (ImageReadError, PlateReadTimeout) as e:
                print(f"Error: {e}")
                return 1
            results = {args.image: result}
        else:
            results = anpr.process_directory(args.directory)

        for name, result in results.items():
            print(f"{name}: {result.plate_text or '<no text>'} ({result.detection.source})")
    finally:
        anpr.close()
        terminate_engine()

    return 0


if __name__ == "__main__":
    sys.exit(main())

import sys
import json
import argparse
from typing import Optional, List
import cv2
import structlog

from .audit import verify_chain
from .config import get_config_summary, load_config
from .data_models import BoundingRegion
from .exceptions import FaceGateError
from .logging_config import configure_logging
from .quality_assessment import FaceQualityAssessor, quality_message

# Initialize structured logger
logger = structlog.get_logger(__name__)


class FaceGateCLI:
    """Command-line interface for the FaceGate engine."""

    def __init__(self) -> None:
        self.parser = self._create_argument_parser()

    def _create_argument_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            prog="facegate",
            description="FaceGate - face matching and capture quality governance",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--log-level",
            default="WARNING",
            help="Log level for diagnostics written to stderr. Default: WARNING.",
        )

        subparsers = parser.add_subparsers(dest="command", required=True)
        self._add_assess_command(subparsers)
        self._add_verify_audit_command(subparsers)
        subparsers.add_parser("config", help="Show the effective configuration.")

        return parser

    def _add_assess_command(self, subparsers) -> None:
        """Add the 'assess' command and its arguments."""
        assess_parser = subparsers.add_parser(
            "assess", help="Assess the capture quality of a face in an image."
        )
        assess_parser.add_argument("image", help="Path to the captured frame.")
        assess_parser.add_argument(
            "--region",
            type=int,
            nargs=4,
            required=True,
            metavar=("LEFT", "TOP", "RIGHT", "BOTTOM"),
            help="Face region in frame coordinates.",
        )
        assess_parser.add_argument(
            "--frame",
            type=int,
            nargs=2,
            metavar=("WIDTH", "HEIGHT"),
            help="Frame size. Defaults to the image size.",
        )
        assess_parser.add_argument(
            "--min-quality",
            type=float,
            default=None,
            help="Acceptance threshold (0-100). Defaults to the configured value.",
        )
        assess_parser.add_argument(
            "--json", action="store_true", help="Print the assessment as JSON."
        )

    def _add_verify_audit_command(self, subparsers) -> None:
        """Add the 'verify-audit' command and its arguments."""
        verify_parser = subparsers.add_parser(
            "verify-audit", help="Verify the hash chain of a JSON Lines audit log."
        )
        verify_parser.add_argument("log", help="Path to the audit log.")

    def _execute_assess_command(self, args: argparse.Namespace) -> int:
        """Execute the assess command; exit code 1 when quality is insufficient."""
        frame_image = cv2.imread(args.image, cv2.IMREAD_COLOR)
        if frame_image is None:
            print(f"[ERROR] Cannot read image: {args.image}", file=sys.stderr)
            return 1

        height, width = frame_image.shape[:2]
        try:
            region = BoundingRegion(*args.region)
            frame = BoundingRegion.from_size(*(args.frame or (width, height)))
        except ValueError as e:
            print(f"[ERROR] {e}", file=sys.stderr)
            return 1

        if region.is_within(width, height):
            face_image = frame_image[region.top : region.bottom, region.left : region.right]
        else:
            logger.warning("Face region outside image, assessing whole image")
            face_image = frame_image

        min_quality = (
            args.min_quality if args.min_quality is not None else load_config().min_quality
        )
        assessor = FaceQualityAssessor(min_overall_quality=min_quality, bgr=True)
        assessment = assessor.assess(face_image, region, frame)

        if args.json:
            print(json.dumps(assessment.to_dict(), indent=2))
        else:
            self._display_assessment(assessment)

        return 0 if assessment.is_acceptable else 1

    def _display_assessment(self, assessment) -> None:
        """Display a human-readable assessment."""
        print("=" * 60)
        print("FACEGATE - CAPTURE QUALITY")
        print("=" * 60)
        print(f"Overall:    {assessment.overall_score:6.1f}")
        print(f"Brightness: {assessment.brightness_score:6.1f}")
        print(f"Contrast:   {assessment.contrast_score:6.1f}")
        print(f"Sharpness:  {assessment.sharpness_score:6.1f}")
        print(f"Position:   {assessment.position_score:6.1f}")
        print(f"Size:       {assessment.size_score:6.1f}")
        print(f"Acceptable: {'yes' if assessment.is_acceptable else 'no'}")
        print(f"Feedback:   {quality_message(assessment)}")
        print("=" * 60)

    def _execute_verify_audit_command(self, args: argparse.Namespace) -> int:
        """Execute the verify-audit command."""
        try:
            result = verify_chain(args.log)
        except OSError as e:
            print(f"[ERROR] Cannot read audit log: {e}", file=sys.stderr)
            return 1

        if result.is_valid:
            print(f"OK: {result.n_records} records, chain intact")
            return 0

        print(
            f"TAMPERED: line {result.first_invalid_line} ({result.reason}), "
            f"{result.n_records} records verified before it"
        )
        return 1

    def _execute_config_command(self, args: argparse.Namespace) -> int:
        """Execute the config command."""
        summary = get_config_summary(load_config())
        print(json.dumps(summary, indent=2, default=str))
        return 0

    def run_from_args(self, args_list: Optional[List[str]] = None) -> int:
        """Run the CLI with provided arguments."""
        try:
            args = self.parser.parse_args(args_list)
            configure_logging(level=args.log_level, structured=False)

            if args.command == "assess":
                return self._execute_assess_command(args)
            elif args.command == "verify-audit":
                return self._execute_verify_audit_command(args)
            elif args.command == "config":
                return self._execute_config_command(args)
            else:
                self.parser.print_help()
                return 1

        except FaceGateError as e:
            logger.error("Command failed", error=str(e), error_code=e.error_code)
            print(f"[ERROR] {e}", file=sys.stderr)
            return 1
        except KeyboardInterrupt:
            print("\nOperation cancelled by user.", file=sys.stderr)
            return 130


def main() -> int:
    """Main entry point for the CLI."""
    cli = FaceGateCLI()
    return cli.run_from_args()


if __name__ == "__main__":
    sys.exit(main())

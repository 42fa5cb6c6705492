"""Command-line interface for comic-distiller."""

import argparse
import logging
import sys
from pathlib import Path

from comic_distiller.config import (
    DEFAULT_CONFIG_PATH,
    build_options,
    deep_merge,
    dump_config,
    load_config,
    persistable,
    reset_config,
    save_config,
)
from comic_distiller.pipeline.orchestrator import Orchestrator
from schemas.options import PROFILES

# Flags mapped to top-level option names
PACKAGING_FLAGS = (
    "title",
    "author",
    "profile",
    "workers",
    "limit_mb",
    "strip_first_directory_from_toc",
    "sort_path_mode",
    "title_page",
)

# Flags mapped to ImageOptions field names
IMAGE_FLAGS = (
    "quality",
    "grayscale",
    "grayscale_mode",
    "crop",
    "crop_limit",
    "brightness",
    "contrast",
    "auto_rotate",
    "auto_split_double_page",
    "keep_double_page_if_split",
    "no_blank_image",
    "manga",
    "has_cover",
    "auto_contrast",
    "no_resize",
    "aspect_ratio",
    "portrait_only",
    "foreground_color",
    "background_color",
)

CROP_RATIO_FLAGS = ("left", "up", "right", "bottom")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging for the CLI."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
    )


def collect_overrides(args: argparse.Namespace) -> dict:
    """Gather the options given on the command line.

    Flags left unset are omitted so that the persisted defaults apply.
    """
    overrides: dict = {}
    image: dict = {}

    for name in PACKAGING_FLAGS:
        value = getattr(args, name, None)
        if value is not None:
            overrides[name] = value

    for name in IMAGE_FLAGS:
        value = getattr(args, name, None)
        if value is not None:
            image[name] = value

    crop_ratio = {
        edge: getattr(args, f"crop_ratio_{edge}")
        for edge in CROP_RATIO_FLAGS
        if getattr(args, f"crop_ratio_{edge}", None) is not None
    }
    if crop_ratio:
        image["crop_ratio"] = crop_ratio

    if getattr(args, "auto", False):
        image["auto_rotate"] = True
        image["auto_split_double_page"] = True

    if image:
        overrides["image"] = image
    return overrides


def convert(args: argparse.Namespace) -> int:
    """Execute the convert command.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config)
        overrides = collect_overrides(args)
        overrides.update(
            input=args.input,
            output=args.output,
            dry=args.dry or args.dry_verbose,
            dry_verbose=args.dry_verbose,
            quiet=args.quiet,
        )
        options = build_options(config, overrides)
        orchestrator = Orchestrator(options)

        if options.dry:
            print(orchestrator.dry_run())
            return 0

        paths = orchestrator.run()

        logger.info(f"Converted {options.input}")
        logger.info(f"  Title: {options.title}")
        logger.info(f"  Volumes: {len(paths)}")
        for path in paths:
            logger.info(f"  Output: {path}")

        return 0

    except Exception as e:
        logger.error(f"Failed to convert {args.input}: {e}")
        return 1


def show_config(args: argparse.Namespace) -> int:
    """Execute the show-config command."""
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        print(dump_config(load_config(args.config)))
        return 0
    except Exception as e:
        logger.error(f"Failed to read config: {e}")
        return 1


def save_config_command(args: argparse.Namespace) -> int:
    """Execute the save-config command.

    The given flags are merged into the current configuration, validated,
    and written back.
    """
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        config = load_config(args.config)
        overrides = collect_overrides(args)
        overrides.pop("title", None)
        overrides.pop("workers", None)

        # Validate against a throwaway input before persisting
        options = build_options(deep_merge(config, overrides), {"input": Path(".")})
        save_config(persistable(options), args.config)
        return 0
    except Exception as e:
        logger.error(f"Failed to save config: {e}")
        return 1


def reset_config_command(args: argparse.Namespace) -> int:
    """Execute the reset-config command."""
    setup_logging(args.verbose)
    logger = logging.getLogger(__name__)

    try:
        reset_config(args.config)
        return 0
    except Exception as e:
        logger.error(f"Failed to reset config: {e}")
        return 1


def add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Path to the persisted defaults (default: {DEFAULT_CONFIG_PATH})",
    )


def add_option_arguments(parser: argparse.ArgumentParser) -> None:
    """Add the flags shared by convert and save-config.

    Every flag defaults to None so that only explicit values override the
    persisted configuration.
    """
    output = parser.add_argument_group("output")
    output.add_argument("--title", type=str, default=None, help="Book title (default: output name)")
    output.add_argument("--author", type=str, default=None, help="Book author")
    output.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of pages processed in parallel (default: number of CPUs)",
    )

    image = parser.add_argument_group("image")
    image.add_argument(
        "--profile",
        choices=sorted(PROFILES),
        default=None,
        help="Device profile: "
        + ", ".join(f"{p.code} ({p.description}, {p.view})" for p in PROFILES.values()),
    )
    image.add_argument("--quality", type=int, default=None, help="JPEG quality (1-100)")
    image.add_argument(
        "--grayscale",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Convert pages to grayscale",
    )
    image.add_argument(
        "--grayscale-mode",
        choices=["normal", "average", "luminance"],
        default=None,
        help="Grayscale conversion",
    )
    image.add_argument(
        "--crop",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Crop uniform margins",
    )
    for edge in CROP_RATIO_FLAGS:
        image.add_argument(
            f"--crop-ratio-{edge}",
            type=int,
            default=None,
            help=f"Percent of non-blank pixels tolerated in a {edge} margin line",
        )
    image.add_argument(
        "--crop-limit",
        type=int,
        default=None,
        help="Max percent of the image removable by crop per edge (0 = no limit)",
    )
    image.add_argument("--brightness", type=int, default=None, help="Brightness delta (-100 to 100)")
    image.add_argument("--contrast", type=int, default=None, help="Contrast delta (-100 to 100)")
    image.add_argument(
        "--auto-contrast",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Stretch the tones of each page to the full range",
    )
    image.add_argument(
        "--auto-rotate",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Rotate landscape pages",
    )
    image.add_argument(
        "--auto-split-double-page",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Split landscape pages into two pages",
    )
    image.add_argument(
        "--keep-double-page-if-split",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Keep the whole spread in addition to its halves",
    )
    image.add_argument(
        "--auto",
        action="store_true",
        help="Shortcut for --auto-rotate --auto-split-double-page",
    )
    image.add_argument(
        "--no-blank-image",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Remove blank pages",
    )
    image.add_argument(
        "--manga",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Right-to-left reading direction",
    )
    image.add_argument(
        "--has-cover",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="The first page is the cover",
    )
    image.add_argument(
        "--no-resize",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Keep the processed page size instead of fitting the device",
    )
    image.add_argument(
        "--aspect-ratio",
        type=float,
        default=None,
        help="Page height/width ratio (0 or -1 = device screen)",
    )
    image.add_argument(
        "--portrait-only",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Show every page alone, never as a spread",
    )
    image.add_argument(
        "--foreground-color",
        type=str,
        default=None,
        help="Hex color of text (3 or 6 digits, default: 000)",
    )
    image.add_argument(
        "--background-color",
        type=str,
        default=None,
        help="Hex color of the page background (3 or 6 digits, default: FFF)",
    )

    packaging = parser.add_argument_group("packaging")
    packaging.add_argument(
        "--limit-mb",
        type=int,
        default=None,
        help="Maximum size of each EPUB in MiB (0 = unlimited, else >= 20)",
    )
    packaging.add_argument(
        "--strip-first-directory-from-toc",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Hide a single top-level directory in the TOC",
    )
    packaging.add_argument(
        "--sort-path-mode",
        choices=["alpha", "alphanumeric", "alphanumeric_files"],
        default=None,
        help="Ordering of the source paths",
    )
    packaging.add_argument(
        "--title-page",
        choices=["always", "never", "when_split"],
        default=None,
        help="When to add the generated title page",
    )


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the CLI.

    Args:
        argv: Command-line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = argparse.ArgumentParser(
        prog="comic-distiller",
        description="Convert comic folders, archives and PDFs into fixed-layout EPUB files",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    subparsers = parser.add_subparsers(
        title="commands",
        description="Available commands",
        dest="command",
    )

    convert_parser = subparsers.add_parser(
        "convert",
        help="Convert a comic into one or more EPUB files",
        description="Convert a folder, .cbz/.zip archive or PDF of page images into fixed-layout EPUB volumes.",
    )
    convert_parser.add_argument(
        "input",
        type=Path,
        help="Comic folder, .cbz/.zip archive or .pdf",
    )
    convert_parser.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output .epub file or directory (default: next to the input)",
    )
    convert_parser.add_argument(
        "--dry",
        action="store_true",
        help="Print the table of contents without writing anything",
    )
    convert_parser.add_argument(
        "--dry-verbose",
        action="store_true",
        help="Like --dry, also listing the cover and every file",
    )
    convert_parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Disable progress bars",
    )
    add_config_argument(convert_parser)
    add_option_arguments(convert_parser)
    convert_parser.set_defaults(func=convert)

    show_parser = subparsers.add_parser(
        "show-config",
        help="Print the persisted defaults",
        description="Print the persisted defaults merged over the built-in ones.",
    )
    add_config_argument(show_parser)
    show_parser.set_defaults(func=show_config)

    save_parser = subparsers.add_parser(
        "save-config",
        help="Persist the given options as defaults",
        description="Merge the given options into the persisted defaults.",
    )
    add_config_argument(save_parser)
    add_option_arguments(save_parser)
    save_parser.set_defaults(func=save_config_command)

    reset_parser = subparsers.add_parser(
        "reset-config",
        help="Restore the built-in defaults",
        description="Overwrite the persisted defaults with the built-in ones.",
    )
    add_config_argument(reset_parser)
    reset_parser.set_defaults(func=reset_config_command)

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

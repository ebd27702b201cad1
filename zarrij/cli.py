"""Console script for zarrij.

Sub-commands:
    convert: Assemble channel datasets of one container and export them,
        with metadata, to another container (or another path of the same one)
    info: Print the attributes and calibration of datasets
"""

import argparse
import logging
import sys
from typing import List, Optional

from .assemble import assemble
from .container import open_container
from .enums import Compression, StyleId
from .export import export
from .interval import common_crop_bounds
from .logging import configure_logging
from .metadata import MetadataRegistry
from .selection import build_selection, parse_block_size, parse_dataset_list


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--style",
        type=str,
        default=StyleId.VIEWER.value,
        help="Metadata style of the input datasets (default: viewer)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Enable debug logging"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="zarrij",
        description="Assemble and export multi-channel images stored in zarr containers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  zarrij info input.zarr raw/c0/s0 raw/c1/s0
  zarrij convert input.zarr output.zarr --datasets raw/c0/s0,raw/c1/s0
  zarrij convert input.zarr output.zarr.zip --datasets raw/c0 --subset '0,0,0;127,127,15' --align-to-blocks
  zarrij convert s3://bucket/in.zarr out.zarr --datasets img --output-style calibration --compression zstd
        """,
    )
    subparsers = parser.add_subparsers(dest="command")

    convert = subparsers.add_parser("convert", help="Assemble datasets and export them")
    convert.add_argument("input", help="Input container path or URI")
    convert.add_argument("output", help="Output container path or URI")
    convert.add_argument(
        "--datasets",
        type=parse_dataset_list,
        required=True,
        help="Comma-separated dataset paths, one per channel (e.g., 'c0/s0,c1/s0')",
    )
    convert.add_argument(
        "--destination",
        type=str,
        default="image",
        help="Dataset path to export to inside the output container (default: image)",
    )
    convert.add_argument(
        "--output-style",
        type=str,
        default=None,
        help="Metadata style to write (default: same as --style; 'none' writes no metadata)",
    )
    convert.add_argument(
        "--subset",
        type=str,
        default=None,
        help="Crop as 'xmin,ymin,zmin;xmax,ymax,zmax' (inclusive)",
    )
    convert.add_argument(
        "--align-to-blocks",
        action="store_true",
        help="Grow the crop to whole chunks of the input datasets",
    )
    convert.add_argument(
        "--virtual",
        action="store_true",
        help="Read pixels lazily while writing instead of loading them first",
    )
    convert.add_argument(
        "--block-size",
        type=str,
        default="64",
        help="Comma-separated chunk size of written datasets, or a single value for every axis (default: 64)",
    )
    convert.add_argument(
        "--compression",
        type=str,
        default=Compression.GZIP.value,
        choices=[c.value for c in Compression],
        help="Compression of written datasets (default: gzip)",
    )
    split = convert.add_mutually_exclusive_group()
    split.add_argument(
        "--split-channels",
        dest="channel_split",
        action="store_const",
        const=True,
        default=None,
        help="Write one dataset per channel",
    )
    split.add_argument(
        "--no-split-channels",
        dest="channel_split",
        action="store_const",
        const=False,
        help="Write the whole image as one dataset",
    )
    convert.add_argument(
        "--threads",
        type=int,
        default=1,
        help="Number of channels written in parallel (default: 1)",
    )
    _add_common_arguments(convert)

    info = subparsers.add_parser("info", help="Print dataset attributes and calibration")
    info.add_argument("input", help="Container path or URI")
    info.add_argument("datasets", nargs="+", help="Dataset paths")
    _add_common_arguments(info)

    return parser


def _convert(args: argparse.Namespace) -> None:
    registry = MetadataRegistry()
    output_style = args.output_style or args.style
    if output_style.lower() == "none":
        output_style = None

    with open_container(args.input) as source:
        selection = build_selection(
            source,
            args.datasets,
            args.style,
            registry,
            subset=args.subset,
            virtual=args.virtual,
            align_to_blocks=args.align_to_blocks,
        )
        print(f"Assembling {len(selection)} channel(s) from: {args.input}")
        image = assemble(selection, source, registry, style_id=args.style)
        print(f"Assembled image with shape {image.shape} and axes {image.dims}")
        for issue in image.metadata_issues:
            print(f"Warning: {issue}", file=sys.stderr)

        split = (
            registry.splits_channels(output_style)
            if args.channel_split is None
            else args.channel_split
        )
        ndim = image.ndim - 1 if split and image.channel_axis is not None else image.ndim
        block_size = parse_block_size(args.block_size, ndim)

        print(f"Exporting to: {args.output} ({args.destination})")
        with open_container(args.output, mode="a") as target:
            result = export(
                image,
                target,
                args.destination,
                block_size,
                compression=args.compression,
                style_id=output_style,
                channel_split=split,
                concurrency=args.threads,
                registry=registry,
            )

    for path in result.written:
        print(f"  wrote {path}")
    print("Conversion completed successfully!")


def _info(args: argparse.Namespace) -> None:
    registry = MetadataRegistry()

    with open_container(args.input) as container:
        if len(args.datasets) > 1:
            bounds = common_crop_bounds(container, args.datasets)
            print(f"Common crop bounds: {list(bounds.min)} - {list(bounds.max)}")

        for path in args.datasets:
            attrs = container.get_attributes(path)
            calibration, issues = registry.read_calibration(
                container, path, args.style, ndim=attrs.ndim
            )
            print(f"{path}:")
            print(f"  dimensions:  {list(attrs.dimensions)}")
            print(f"  block size:  {list(attrs.block_size)}")
            print(f"  dtype:       {attrs.dtype}")
            print(f"  compression: {attrs.compression}")
            print(f"  spacing:     {list(calibration.spacing)} {calibration.unit}")
            print(f"  origin:      {list(calibration.origin)}")
            for issue in issues:
                print(f"  warning:     {issue}")


def main(argv: Optional[List[str]] = None) -> None:
    """Console script entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(1)

    if args.verbose:
        configure_logging(level=logging.DEBUG)

    try:
        if args.command == "convert":
            _convert(args)
        else:
            _info(args)
    except Exception as e:
        print(f"Error during {args.command}: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

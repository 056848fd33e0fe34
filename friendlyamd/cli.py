"""
friendlyamd command line
========================
Usage:
  friendlyamd [options] <path/to/library> [.../path/to/other/libraries]
  friendlyamd -D /Applications/Foo.app -i -b -s

Every path given (and every candidate file found under -D directories) is
patched by its own job; --jobs of them run at a time.

Exit status: 0 on success, 1 on bad arguments, 2 if any file failed or the
inputs could not be enumerated.
"""

import argparse
import functools
import logging
import os
import sys
import threading
from pathlib import Path

from . import __version__
from .errors import FormatError
from .patcher import PatchOptions, patch_file
from .report import generate_patch_graph, write_json_report
from .scheduler import run_jobs
from .tools import SystemTools
from .walker import walk_directory


# region Arguments

def build_parser():
    parser = argparse.ArgumentParser(
        prog="friendlyamd",
        usage="%(prog)s [args] <path/to/library> [.../path/to/other/libraries]",
        description="Patch Intel-only CPU checks out of macOS libraries.")
    parser.add_argument("paths", nargs="*", help="libraries to patch")
    parser.add_argument("-i", "--in-place", action="store_true",
                        help="Directly patch the library, as opposed to creating a patched "
                             "library with `.patched` appended to the file name.")
    parser.add_argument("-d", "--dry-run", action="store_true",
                        help="Do all checking and patching, but DO NOT write anything to disk.")
    parser.add_argument("-b", "--backup", action="store_true",
                        help="Only works in conjunction with `--in-place`; backs up the original "
                             "library by copying it and appending `.bak` to its name.")
    parser.add_argument("-s", "--sign", action="store_true",
                        help="Automatically invoke `codesign` on patched libraries.")
    parser.add_argument("-c", "--clear-xa", dest="clear_xa", action="store_true", default=True,
                        help="Clear extended attributes on patched libraries (default).")
    parser.add_argument("--no-clear-xa", dest="clear_xa", action="store_false",
                        help="Leave extended attributes alone.")
    parser.add_argument("-D", "--directories", nargs="+", action="extend", default=[],
                        metavar="DIR",
                        help="Scan directories alongside files, picking every file with no "
                             "extension or with the `.dylib` extension.")
    parser.add_argument("-j", "--jobs", type=int, default=os.cpu_count() or 1,
                        help="Number of libraries processed at the same time (default: CPU count).")
    parser.add_argument("--report", metavar="FILE",
                        help="Write a JSON summary of the run to FILE.")
    parser.add_argument("--graph", metavar="DIR",
                        help="Save a patch_graph.png of patched routines into DIR.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser

# endregion Arguments


# region Jobs

def format_routine(routine):
    hex_bytes = routine.bytes.hex(' ').upper()
    return f"- <{hex_bytes}> at offset {routine.offset} (Hex: {routine.offset:x})"


def patch_job(path, options, tools, collected, collected_lock, skip_unrecognized=False):
    """Patch one file and print its outcome as a single block.

    Files picked up by a directory walk (skip_unrecognized) are expected to
    include non-libraries; those are reported and skipped instead of failing.
    """
    print(f"Analyzing and patching file: {path}")
    try:
        report = patch_file(path, options, tools)
    except FormatError:
        if not skip_unrecognized:
            raise
        print(f"Skipping {path}: not a Mach-O library\nFinished processing file: {path}")
        return None

    lines = []
    if report is not None:
        lines.append(f"Routines found for {path}:")
        lines.extend(format_routine(r) for r in report.patched_routines)
        for w in report.warnings:
            lines.append(f"WARNING: {w}")
        if options.dry_run:
            lines.append(f"File {path} would be patched.")
        else:
            lines.append(f"File {path} was patched.")
        lines.append(f"Patched file location: {report.patched_path}")
        with collected_lock:
            collected.append(report)
    lines.append(f"Finished processing file: {path}")
    print("\n".join(lines))
    return report


def iter_jobs(paths, directories, options, tools, collected, collected_lock):
    """Lazily yield one deferred patch job per distinct input file."""
    seen = set()

    def candidates():
        for d in directories:
            for p in walk_directory(d):
                yield p, True
        for p in paths:
            yield Path(p), False

    for path, walked in candidates():
        path = path.resolve()
        if path in seen:
            continue
        seen.add(path)
        yield functools.partial(patch_job, path, options, tools, collected, collected_lock,
                                skip_unrecognized=walked)

# endregion Jobs


# region Main

def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(threadName)s: %(message)s")

    if not args.paths and not args.directories:
        print("You must specify at least a path to a library as argument!", file=sys.stderr)
        return 1

    if args.jobs <= 0:
        print("The number of jobs to spawn must be a positive integer greater than zero!",
              file=sys.stderr)
        return 1

    missing = [d for d in args.directories if not Path(d).is_dir()]
    if missing:
        print(f"Not a directory: {', '.join(missing)}", file=sys.stderr)
        return 1

    if args.backup and not args.in_place:
        print("`--backup` only works in conjunction with `--in-place`!", file=sys.stderr)
        return 1

    options = PatchOptions(dry_run=args.dry_run, in_place=args.in_place,
                           backup=args.backup, clear_xattrs=args.clear_xa,
                           sign=args.sign)

    if options.dry_run:
        print("\n\nWarning!\nDry run is active! No files will be actually patched!\n")

    tools = SystemTools()
    reports = []
    reports_lock = threading.Lock()
    jobs = iter_jobs(args.paths, args.directories, options, tools, reports, reports_lock)
    try:
        summary = run_jobs(jobs, args.jobs)
    except Exception as exc:
        # raised by the job source (path resolution, directory walk); the jobs
        # already started have finished by now
        print(f"Error while collecting libraries: {exc}", file=sys.stderr)
        return 2

    print("\n" + "=" * 65)
    print("  RESULTS SUMMARY")
    print("=" * 65)
    print(f"  Files processed:  {summary.started}")
    print(f"  Files patched:    {len(reports)}")
    print(f"  Routines patched: {sum(len(r.patched_routines) for r in reports)}")
    print(f"  Errors:           {summary.failed}")

    if args.report:
        out = write_json_report(reports, args.report, summary, dry_run=options.dry_run)
        print(f"\n  JSON saved: {out}")

    if args.graph:
        viz_path = generate_patch_graph(reports, Path(args.graph))
        if viz_path:
            print(f"  Patch graph saved: {viz_path}")

    return 2 if summary.failed else 0


if __name__ == '__main__':
    sys.exit(main())

# endregion Main

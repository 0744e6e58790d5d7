#!/usr/bin/env python3
# /// script
# requires-python = ">=3.11"
# dependencies = [
#   "beartype",
#   "gitpython",
# ]
# ///
"""
Pin source links on the docs site to a fixed mathlib commit.

The generated pages link to mathlib's master branch. The browser snippet
written by this script redirects such links to the commit the docs were
built from, so line anchors keep pointing at the right code.

Usage:
    python scripts/add_commit.py [--commit SHA | --repo PATH] [--output html/add_commit.js]
"""

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional, Tuple

from beartype import beartype
from git import Repo

logger = logging.getLogger(__name__)

MATHLIB_REPO_URL = "https://github.com/leanprover-community/mathlib"
PINNED_COMMIT = "9a8dcb9be408e7ae8af9f6832c08c021007f40ec"
DEFAULT_OUTPUT = "html/add_commit.js"


@beartype
def pinned_mapping(
    commit: str,
    repo_url: str = MATHLIB_REPO_URL,
    branch: str = "master",
    subdir: str = "src/",
) -> Tuple[str, str]:
    """Return the (unpinned prefix, pinned prefix) pair for ``commit``."""
    base = repo_url.rstrip("/")
    return f"{base}/blob/{branch}/{subdir}", f"{base}/blob/{commit}/{subdir}"


COMMIT_MAP: List[Tuple[str, str]] = [pinned_mapping(PINNED_COMMIT)]


@beartype
def redirect_target(url: str, mapping: List[Tuple[str, str]] = COMMIT_MAP) -> str:
    """Rewrite ``url`` to its pinned equivalent; other URLs are unchanged."""
    for prefix, replacement in mapping:
        if url.startswith(prefix):
            return replacement + url[len(prefix) :]
    return url


@beartype
def head_commit(repo_path: Path) -> str:
    """SHA of the commit checked out in ``repo_path``."""
    return Repo(repo_path).head.commit.hexsha


@beartype
def render_redirect_script(mapping: List[Tuple[str, str]]) -> str:
    """Browser snippet defining ``redirectTo(tgt)`` for ``mapping``."""
    entries = json.dumps([list(pair) for pair in mapping], ensure_ascii=False)
    return (
        f"const commit = {entries};\n"
        "function redirectTo(tgt) {\n"
        "  let loc = tgt;\n"
        "  for (const [prefix, replacement] of commit) {\n"
        "    if (tgt.startsWith(prefix)) {\n"
        "      loc = tgt.replace(prefix, replacement);\n"
        "      break;\n"
        "    }\n"
        "  }\n"
        "  window.location.replace(loc);\n"
        "}\n"
    )


@beartype
def write_redirect_script(output: Path, mapping: List[Tuple[str, str]]):
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(render_redirect_script(mapping), encoding="utf-8")


@beartype
def main(argv: Optional[List[str]] = None):
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    parser = argparse.ArgumentParser(
        description="Generate the source-link pinning snippet for the docs site"
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--commit",
        type=str,
        help=f"Commit to pin links to (default: {PINNED_COMMIT})",
    )
    source.add_argument(
        "--repo",
        type=Path,
        help="Pin links to the HEAD commit of this mathlib checkout",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=Path(DEFAULT_OUTPUT),
        help=f"Where to write the snippet (default: {DEFAULT_OUTPUT})",
    )
    args = parser.parse_args(argv)

    if args.repo is not None:
        commit = head_commit(args.repo)
        logger.info(f"Using HEAD of {args.repo}: {commit[:8]}")
    else:
        commit = args.commit or PINNED_COMMIT

    write_redirect_script(args.output, [pinned_mapping(commit)])
    logger.info(f"Wrote {args.output} (pinned to {commit})")


if __name__ == "__main__":
    main()

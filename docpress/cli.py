from __future__ import annotations

import argparse
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import load_config
from .content import Document, find_documents, load_documents
from .errors import ConfigError, RenderError, StructuralError, UnresolvedReferenceError
from .pages import FEED_LIMIT, BuildReport, SiteOptions, format_report, load_base_template, publish
from .render import RenderedPage, RenderOptions, copy_static, render_document
from .utils import clean_output_dir, parse_bool, parse_int, resolve_workers
from .validate import scan_assets, validate_document

EXIT_BUILD_FAILED = 1
EXIT_USAGE = 2


@dataclass
class DocumentResult:
    document: Document
    warnings: list[UnresolvedReferenceError]
    page: Optional[RenderedPage] = None
    error: Optional[RenderError] = None
    skipped: bool = False


def build_site(args: argparse.Namespace) -> BuildReport:
    """Load, validate, render and publish every document under ``args.input``.

    Raises StructuralError before anything is rendered when the document set
    is malformed, and ConfigError for unusable paths.
    """
    input_dir = Path(args.input)
    output_dir = Path(args.output)
    static_dir = Path(args.static)
    templates_dir = Path(args.templates) if args.templates else None
    snippet_root = Path(args.snippets).resolve() if args.snippets else input_dir.resolve()
    strict = parse_bool(args.strict)
    workers = resolve_workers(args.build_workers)

    if not input_dir.is_dir():
        raise ConfigError(f"Input directory not found: {input_dir}")
    if output_dir.exists() and not output_dir.is_dir():
        raise ConfigError(f"Output path is not a directory: {output_dir}")

    documents = load_documents(find_documents(input_dir), input_dir, workers=workers)

    report = BuildReport()
    published = []
    for document in documents.values():
        if document.draft:
            report.drafts.append(document.source.as_posix())
        else:
            published.append(document)

    assets = scan_assets(static_dir) if static_dir.is_dir() else frozenset()
    known_documents = frozenset(document.rel for document in published)
    known_slugs = frozenset(document.slug for document in published)
    render_options = RenderOptions(
        toc_depth=str(args.toc_depth),
        snippet_root=snippet_root,
        links={document.rel: document.permalink for document in published},
    )

    def process(document: Document) -> DocumentResult:
        warnings = validate_document(document, assets, known_documents, known_slugs, snippet_root)
        if warnings and strict:
            return DocumentResult(document, warnings, skipped=True)
        try:
            page = render_document(document, render_options)
        except RenderError as exc:
            return DocumentResult(document, warnings, error=exc)
        return DocumentResult(document, warnings, page=page)

    if workers > 1 and len(published) > 1:
        with ThreadPoolExecutor(max_workers=min(workers, len(published))) as executor:
            results = list(executor.map(process, published))
    else:
        results = [process(document) for document in published]

    pages = []
    for result in results:
        source = result.document.source.as_posix()
        report.warnings.extend(result.warnings)
        if result.skipped:
            report.skipped.append(source)
        elif result.error is not None:
            report.failed.append(source)
            report.errors.append(result.error)
        else:
            report.processed.append(source)
            pages.append(result.page)

    if parse_bool(args.clean):
        clean_output_dir(output_dir, Path.cwd())
    output_dir.mkdir(parents=True, exist_ok=True)
    if static_dir.is_dir():
        copy_static(static_dir, output_dir)

    options = SiteOptions(
        site_name=str(args.site_name),
        site_description=str(args.site_description),
        site_url=(args.site_url or "").strip(),
        feeds=parse_bool(args.feeds),
        feed_limit=max(0, int(args.feed_limit)),
    )
    base_template = load_base_template(templates_dir)
    _, removed = publish(base_template, output_dir, pages, options, workers=workers)
    report.removed.extend(removed)
    return report


def _build_parser(config: dict) -> argparse.ArgumentParser:
    def cfg_value(key: str, default: object) -> object:
        value = config.get(key)
        return default if value is None else value

    def cfg_str(key: str, default: str) -> str:
        return str(cfg_value(key, default))

    def cfg_bool(key: str, default: bool) -> bool:
        return parse_bool(cfg_value(key, default))

    def cfg_int(key: str, default: int) -> int:
        return parse_int(cfg_value(key, default), default)

    parser = argparse.ArgumentParser(prog="docpress", description="Build a static site from Markdown essays.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    build = subparsers.add_parser("build", help="Build the site.")
    build.add_argument("--config", default="site.toml", help="Path to site config file (TOML/YAML/JSON).")
    build.add_argument("--input", default=cfg_str("input", "posts"), help="Directory containing Markdown documents.")
    build.add_argument("--output", default=cfg_str("output", "dist"), help="Output directory for the site.")
    build.add_argument("--static", default=cfg_str("static", "static"), help="Directory containing static assets.")
    build.add_argument(
        "--templates",
        default=cfg_str("templates", "templates"),
        help="Directory holding base.html (a built-in template is used when absent).",
    )
    build.add_argument(
        "--snippets",
        default=cfg_str("snippets", ""),
        help="Root for code: snippet links starting with '/' (default: the input directory).",
    )
    build.add_argument(
        "--strict",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("strict", False),
        help="Treat unresolved references as fatal: skip the document and exit non-zero.",
    )
    build.add_argument("--site-name", default=cfg_str("site_name", "docpress"), help="Site title.")
    build.add_argument("--site-description", default=cfg_str("site_description", ""), help="Site description.")
    build.add_argument(
        "--site-url",
        default=cfg_str("site_url", ""),
        help="Public site URL used for feeds and sitemap.",
    )
    build.add_argument(
        "--clean",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("clean", False),
        help="Remove the output directory before building.",
    )
    build.add_argument(
        "--feeds",
        action=argparse.BooleanOptionalAction,
        default=cfg_bool("feeds", True),
        help="Generate rss.xml, atom.xml and sitemap.xml (requires --site-url).",
    )
    build.add_argument(
        "--feed-limit",
        default=cfg_int("feed_limit", FEED_LIMIT),
        type=int,
        help="Maximum number of posts in RSS/Atom feeds.",
    )
    build.add_argument(
        "--build-workers",
        default=cfg_int("build_workers", 0),
        type=int,
        help="Number of worker threads for loading/rendering (0 = auto).",
    )
    build.add_argument(
        "--toc-depth",
        default=cfg_str("toc_depth", "2-4"),
        help="Heading depth range for TOC (e.g. 2-4).",
    )
    return parser


def parse_args(argv: list[str]) -> argparse.Namespace:
    pre_parser = argparse.ArgumentParser(add_help=False)
    pre_parser.add_argument("--config", default="site.toml")
    pre_args, _ = pre_parser.parse_known_args(argv)
    config = load_config(Path(pre_args.config))
    return _build_parser(config).parse_args(argv)


def cmd_build(args: argparse.Namespace) -> int:
    start = time.perf_counter()
    try:
        report = build_site(args)
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE
    except StructuralError as exc:
        print(f"Build failed: {exc}", file=sys.stderr)
        return EXIT_BUILD_FAILED
    print(format_report(report))
    elapsed = time.perf_counter() - start
    print(f"Build completed in {elapsed:.2f}s.")
    print(f"Site generated in: {args.output}")
    return report.exit_code(strict=parse_bool(args.strict))


def main(argv: list[str] | None = None) -> int:
    try:
        args = parse_args(list(sys.argv[1:] if argv is None else argv))
    except ConfigError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_USAGE
    except SystemExit as e:
        # argparse uses SystemExit for --help and parse errors.
        code = e.code
        return int(code) if isinstance(code, int) else EXIT_USAGE

    if args.command == "build":
        return cmd_build(args)
    return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))

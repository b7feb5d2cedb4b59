from __future__ import annotations

import datetime as dt
import html
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from email.utils import format_datetime
from pathlib import Path
from typing import Optional

from .cache import OutputWriter
from .errors import RenderError, UnresolvedReferenceError
from .render import RenderedPage, read_template, render_template, rewrite_url

DATE_FMT = "%Y-%m-%d"
DATETIME_FMT = "%Y-%m-%d %H:%M"
FEED_LIMIT = 20
EPOCH = dt.datetime(1970, 1, 1)

DEFAULT_BASE_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{title}}</title>
<meta name="description" content="{{site_description}}">
{{extra_head}}
</head>
<body>
<header class="site-header">
<a class="site-name" href="{{root}}/index.html">{{site_name}}</a>
<p class="site-description">{{site_description}}</p>
</header>
<div class="layout">
<main class="content">
{{content}}
</main>
<aside class="sidebar">
{{sidebar}}
</aside>
</div>
<footer class="site-footer">&copy; {{year}} {{site_name}}</footer>
</body>
</html>
"""


def feed_url(site_url: str, permalink: str) -> str:
    return f"{site_url.rstrip('/')}/{permalink.lstrip('/')}"


def rfc822_date(value: dt.datetime) -> str:
    # Page dates are naive UTC.
    return format_datetime(value.replace(tzinfo=dt.timezone.utc))


def iso_date(value: dt.datetime) -> str:
    return value.strftime("%Y-%m-%dT%H:%M:%SZ")


@dataclass(frozen=True)
class SiteOptions:
    site_name: str = "docpress"
    site_description: str = ""
    site_url: str = ""
    feeds: bool = True
    feed_limit: int = FEED_LIMIT


@dataclass(frozen=True)
class IndexEntry:
    title: str
    permalink: str
    date: dt.datetime
    slug: str
    summary: str = ""


@dataclass(frozen=True)
class SiteIndex:
    entries: tuple[IndexEntry, ...] = ()

    def __iter__(self):
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def slugs(self) -> list[str]:
        return [entry.slug for entry in self.entries]


@dataclass
class BuildReport:
    processed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    drafts: list[str] = field(default_factory=list)
    warnings: list[UnresolvedReferenceError] = field(default_factory=list)
    errors: list[RenderError] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)

    def exit_code(self, strict: bool = False) -> int:
        if self.failed or (strict and self.skipped):
            return 1
        return 0


def sort_newest_first(items: list) -> list:
    """Order by date descending, ties by slug ascending."""
    by_slug = sorted(items, key=lambda item: item.slug)
    return sorted(by_slug, key=lambda item: item.date, reverse=True)


def build_site_index(pages: list[RenderedPage]) -> SiteIndex:
    entries = [
        IndexEntry(
            title=page.title,
            permalink=page.output_path,
            date=page.date,
            slug=page.slug,
            summary=page.summary,
        )
        for page in pages
    ]
    return SiteIndex(tuple(sort_newest_first(entries)))


def format_date(value: dt.datetime) -> str:
    if value.time() == dt.time():
        return value.strftime(DATE_FMT)
    return value.strftime(DATETIME_FMT)


def site_year(entries: SiteIndex | list[RenderedPage]) -> str:
    years = [item.date.year for item in entries]
    return str(max(years)) if years else ""


def load_base_template(templates_dir: Optional[Path]) -> str:
    if templates_dir is not None:
        path = templates_dir / "base.html"
        if path.exists():
            return read_template(path)
    return DEFAULT_BASE_TEMPLATE


def build_sidebar(about_html: str, toc_html: str = "") -> str:
    panels = [
        '<div class="panel">'
        "<h3>About</h3>"
        f"{about_html}"
        "</div>"
    ]
    if toc_html and "<li" in toc_html:
        panels.append(
            '<div class="panel">'
            "<h3>Contents</h3>"
            f"{toc_html}"
            "</div>"
        )
    return "".join(panels)


def build_post_cards(entries: SiteIndex, root: str) -> str:
    cards = []
    for entry in entries:
        title = html.escape(entry.title)
        summary = html.escape(entry.summary)
        url = f"{root}/{entry.permalink}"
        cards.append(
            '<article class="post-card">'
            f'<div class="post-meta"><span class="post-date">{format_date(entry.date)}</span></div>'
            f'<h2 class="post-title"><a href="{url}">{title}</a></h2>'
            f'<p class="post-summary">{summary}</p>'
            f'<a class="post-more" href="{url}">Read more</a>'
            "</article>"
        )
    return "\n".join(cards)


def build_index(base_template: str, writer: OutputWriter, site_index: SiteIndex, options: SiteOptions) -> None:
    root = "."
    about_html = f"<p>{html.escape(options.site_description)}</p>"
    cards = build_post_cards(site_index, root) if len(site_index) else '<p class="post-empty">No posts yet.</p>'
    content = (
        '<div class="section-head">'
        "<h2>Latest posts</h2>"
        "</div>"
        f'<div class="post-grid">{cards}</div>'
    )
    extra_head = ""
    if options.feeds and options.site_url:
        extra_head = f'<link rel="alternate" type="application/atom+xml" href="{root}/atom.xml">'
    html_doc = render_template(
        base_template,
        title=html.escape(options.site_name),
        root=root,
        content=content,
        sidebar=build_sidebar(about_html),
        site_name=html.escape(options.site_name),
        site_description=html.escape(options.site_description),
        year=site_year(site_index),
        extra_head=extra_head,
    )
    writer.write("index.html", html_doc)


def render_post_html(base_template: str, page: RenderedPage, options: SiteOptions, year: str) -> str:
    root = ".."
    about_html = f"<p>{html.escape(options.site_description)}</p>"
    title = html.escape(page.title)
    author_html = f'<span class="post-author">{html.escape(page.author)}</span>' if page.author else ""
    image_html = ""
    if page.image:
        src = html.escape(rewrite_url(page.image, page.source, {}, root))
        image_html = f'<img class="post-image" src="{src}" alt="">'
    category_chips = " ".join(f'<span class="chip">{html.escape(cat)}</span>' for cat in page.categories)
    content = (
        '<article class="post">'
        '<div class="post-meta"><div class="post-meta-left">'
        f'<span class="post-date">{format_date(page.date)}</span>'
        f"{author_html}"
        f'<span class="post-words">{page.words} words</span>'
        "</div>"
        f'<div class="post-tags">{category_chips}</div></div>'
        f'<h1 class="post-title">{title}</h1>'
        f"{image_html}"
        f'<div class="post-body">{page.content}</div>'
        f'<div class="post-footer"><a href="{root}/index.html">Back to home</a></div>'
        "</article>"
    )
    return render_template(
        base_template,
        title=html.escape(f"{page.title} | {options.site_name}"),
        root=root,
        content=content,
        sidebar=build_sidebar(about_html, page.toc),
        site_name=html.escape(options.site_name),
        site_description=html.escape(options.site_description),
        year=year,
        extra_head="",
    )


def build_posts(
    base_template: str,
    writer: OutputWriter,
    pages: list[RenderedPage],
    options: SiteOptions,
    workers: int = 1,
) -> None:
    ordered = sort_newest_first(pages)
    year = site_year(ordered)

    def render_post(page: RenderedPage) -> str:
        return render_post_html(base_template, page, options, year)

    workers = max(1, int(workers or 1))
    if workers <= 1 or len(ordered) <= 1:
        documents = [render_post(page) for page in ordered]
    else:
        with ThreadPoolExecutor(max_workers=min(workers, len(ordered))) as executor:
            documents = list(executor.map(render_post, ordered))
    for page, html_doc in zip(ordered, documents):
        writer.write(page.output_path, html_doc)


def build_rss(writer: OutputWriter, site_index: SiteIndex, options: SiteOptions) -> None:
    if not options.site_url:
        return
    site_url = options.site_url.rstrip("/")
    entries = site_index.entries[: options.feed_limit]
    items = []
    for entry in entries:
        link = feed_url(site_url, entry.permalink)
        items.append(
            "\n".join(
                [
                    "<item>",
                    f"<title>{html.escape(entry.title)}</title>",
                    f"<link>{link}</link>",
                    f"<guid>{link}</guid>",
                    f"<pubDate>{rfc822_date(entry.date)}</pubDate>",
                    f"<description>{html.escape(entry.summary)}</description>",
                    "</item>",
                ]
            )
        )
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<rss version="2.0">',
        "<channel>",
        f"<title>{html.escape(options.site_name)}</title>",
        f"<link>{site_url}/</link>",
        f"<description>{html.escape(options.site_description)}</description>",
    ]
    if entries:
        lines.append(f"<lastBuildDate>{rfc822_date(entries[0].date)}</lastBuildDate>")
    lines.extend(["\n".join(items), "</channel>", "</rss>"])
    writer.write("rss.xml", "\n".join(lines))


def build_atom(writer: OutputWriter, site_index: SiteIndex, options: SiteOptions) -> None:
    if not options.site_url:
        return
    site_url = options.site_url.rstrip("/")
    entries = site_index.entries[: options.feed_limit]
    # An empty feed takes the epoch rather than the build time.
    updated = iso_date(entries[0].date) if entries else iso_date(EPOCH)
    items = []
    for entry in entries:
        link = feed_url(site_url, entry.permalink)
        items.append(
            "\n".join(
                [
                    "<entry>",
                    f"<title>{html.escape(entry.title)}</title>",
                    f'<link href="{link}" />',
                    f"<id>{link}</id>",
                    f"<updated>{iso_date(entry.date)}</updated>",
                    f"<summary>{html.escape(entry.summary)}</summary>",
                    "</entry>",
                ]
            )
        )
    atom = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<feed xmlns="http://www.w3.org/2005/Atom">',
            f"<title>{html.escape(options.site_name)}</title>",
            f"<id>{site_url}/</id>",
            f"<updated>{updated}</updated>",
            f'<link href="{site_url}/atom.xml" rel="self" />',
            f'<link href="{site_url}/" />',
            "\n".join(items),
            "</feed>",
        ]
    )
    writer.write("atom.xml", atom)


def build_sitemap(writer: OutputWriter, site_index: SiteIndex, options: SiteOptions) -> None:
    if not options.site_url:
        return
    site_url = options.site_url.rstrip("/")
    urls: list[tuple[str, Optional[dt.datetime]]] = [(site_url + "/", None)]
    for entry in site_index:
        urls.append((feed_url(site_url, entry.permalink), entry.date))
    items = []
    for url, lastmod in urls:
        rows = ["<url>", f"<loc>{url}</loc>"]
        if lastmod:
            rows.append(f"<lastmod>{lastmod.date().isoformat()}</lastmod>")
        rows.append("</url>")
        items.append("\n".join(rows))
    sitemap = "\n".join(
        [
            '<?xml version="1.0" encoding="UTF-8"?>',
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
            "\n".join(items),
            "</urlset>",
        ]
    )
    writer.write("sitemap.xml", sitemap)


def publish(
    base_template: str,
    output_dir: Path,
    pages: list[RenderedPage],
    options: SiteOptions,
    workers: int = 1,
) -> tuple[SiteIndex, list[str]]:
    """Write every page, the index and the feeds. Returns the index and removed files."""
    writer = OutputWriter(output_dir)
    site_index = build_site_index(pages)
    build_posts(base_template, writer, pages, options, workers=workers)
    build_index(base_template, writer, site_index, options)
    if options.feeds:
        build_rss(writer, site_index, options)
        build_atom(writer, site_index, options)
        build_sitemap(writer, site_index, options)
    removed = writer.finish()
    return site_index, removed


def format_report(report: BuildReport) -> str:
    rows = [
        ("processed", len(report.processed)),
        ("skipped", len(report.skipped)),
        ("failed", len(report.failed)),
        ("drafts", len(report.drafts)),
        ("removed", len(report.removed)),
    ]
    width = max(len(name) for name, _ in rows)
    lines = [f"{'documents'.ljust(width)}  count"]
    lines.extend(f"{name.ljust(width)}  {count}" for name, count in rows)
    skipped = set(report.skipped)
    for warning in report.warnings:
        label = "skipped" if warning.path.as_posix() in skipped else "warning"
        lines.append(f"{label}: {warning}")
    for error in report.errors:
        lines.append(f"error: {error}")
    for rel_path in report.removed:
        lines.append(f"removed: {rel_path}")
    return "\n".join(lines)

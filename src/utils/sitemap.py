from dataclasses import dataclass
from datetime import datetime
from typing import List, Literal, Optional
from xml.etree import ElementTree

from db.database import connect, fetch_all
from utils.config import get_settings

ChangeFrequency = Literal["always", "hourly", "daily", "weekly", "monthly", "yearly", "never"]


@dataclass(frozen=True)
class SitemapEntry:
    url: str
    last_modified: datetime
    change_frequency: ChangeFrequency
    priority: float


async def build_sitemap(site_url: Optional[str] = None, now: Optional[datetime] = None) -> List[SitemapEntry]:
    """Home first, then every category, then every available product."""
    base = (site_url or get_settings().site_url).rstrip("/")
    now = now or datetime.now()
    async with connect() as conn:
        categories = await fetch_all(conn, "SELECT slug FROM categories ORDER BY name;")
        products = await fetch_all(
            conn,
            "SELECT slug, updated_at FROM products WHERE is_available = 1 ORDER BY id;",
        )

    entries = [SitemapEntry(base, now, "daily", 1.0)]
    entries.extend(
        SitemapEntry(f"{base}/category/{row['slug']}", now, "weekly", 0.9)
        for row in categories
    )
    entries.extend(
        SitemapEntry(
            f"{base}/product/{row['slug']}",
            datetime.fromisoformat(str(row["updated_at"])),
            "weekly",
            0.8,
        )
        for row in products
    )
    return entries


def render_sitemap_xml(entries: List[SitemapEntry]) -> str:
    urlset = ElementTree.Element("urlset", xmlns="http://www.sitemaps.org/schemas/sitemap/0.9")
    for entry in entries:
        url = ElementTree.SubElement(urlset, "url")
        ElementTree.SubElement(url, "loc").text = entry.url
        ElementTree.SubElement(url, "lastmod").text = entry.last_modified.date().isoformat()
        ElementTree.SubElement(url, "changefreq").text = entry.change_frequency
        ElementTree.SubElement(url, "priority").text = f"{entry.priority:.1f}"
    return ElementTree.tostring(urlset, encoding="unicode", xml_declaration=True)

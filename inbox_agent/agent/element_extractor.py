"""
Extraction of unsubscribe-relevant elements from a live page.

A DOM script collects forms, buttons, links and footer-like sections whose
text or attributes mention the unsubscribe vocabulary. The raw fragments are
then sanitized with BeautifulSoup and capped to a total byte budget so that
the page analysis prompt stays bounded whatever the page looks like.
"""

from typing import Any, Dict, Iterable, List, Tuple

from bs4 import BeautifulSoup, Comment

from ..structured_logging import StructuredLogger
from .constants import EXTRACTION_KEYWORDS, SNAPSHOT_BYTE_BUDGET, STRIPPED_TAGS
from .types import PageSnapshot

EXTRACTION_SCRIPT = """
(keywords) => {
  const matches = (value) => {
    if (!value) return false;
    const text = String(value).toLowerCase();
    return keywords.some((k) => text.includes(k));
  };
  const isVisible = (el) => {
    const style = window.getComputedStyle(el);
    const rect = el.getBoundingClientRect();
    return style.display !== 'none' && style.visibility !== 'hidden'
      && parseFloat(style.opacity || '1') !== 0 && rect.width > 0 && rect.height > 0;
  };
  const strip = (el, selectors, limit) => {
    const clone = el.cloneNode(true);
    clone.querySelectorAll(selectors).forEach((n) => n.remove());
    return clone.outerHTML.slice(0, limit);
  };
  const describe = (el) => {
    const tag = el.tagName.toLowerCase();
    const attrs = ['type', 'id', 'class', 'name', 'value', 'placeholder', 'href']
      .filter((a) => el.getAttribute(a))
      .map((a) => `${a}="${el.getAttribute(a).slice(0, 200)}"`)
      .join(' ');
    let inner = (el.innerText || el.textContent || '').trim().slice(0, 200);
    if (tag === 'select') {
      inner = Array.from(el.options).map((o) => `<option value="${o.value}">${o.text}</option>`).join('');
    }
    return `<${tag}${attrs ? ' ' + attrs : ''}>${inner}</${tag}>`;
  };

  const forms = [];
  document.querySelectorAll('form').forEach((form) => {
    const actionable = Array.from(form.querySelectorAll('button, input, select, textarea'))
      .filter((el) => el.type !== 'hidden' && isVisible(el));
    if (!actionable.length && !matches(form.textContent)) return;
    const action = form.getAttribute('action') || '';
    const method = form.getAttribute('method') || 'get';
    forms.push(`<form action="${action}" method="${method}">\\n`
      + actionable.map(describe).join('\\n') + '\\n</form>');
  });

  const buttons = [];
  document.querySelectorAll('button, input[type="submit"], input[type="button"], [role="button"]')
    .forEach((el) => {
      if (!isVisible(el)) return;
      const text = el.innerText || el.textContent || el.value || '';
      if (!(matches(text) || matches(el.className) || matches(el.id) || matches(el.value))) return;
      const parent = el.parentElement;
      const context = parent ? strip(parent, 'script, style, noscript', 2000) : '';
      buttons.push(describe(el) + (context ? '\\nContext: ' + context : ''));
    });

  const links = [];
  document.querySelectorAll('a[href]').forEach((el) => {
    const text = (el.innerText || el.textContent || '').trim();
    const href = el.getAttribute('href');
    if (!(matches(text) || matches(href) || matches(el.className))) return;
    links.push(`<a href="${href}">${text.slice(0, 200)}</a>`);
  });

  const sections = [];
  const sectionSelectors = ['footer', '[class*="footer"]', '[id*="footer"]',
    '[class*="unsubscribe"]', '[id*="unsubscribe"]', '[class*="preference"]', '[class*="optout"]'];
  document.querySelectorAll(sectionSelectors.join(', ')).forEach((el) => {
    sections.push(strip(el, 'script, style, noscript, img', 3000));
  });

  return { forms, buttons, links, sections };
}
"""

BUCKETS: Tuple[str, ...] = ('forms', 'buttons', 'links', 'sections')


def sanitize_fragment(html: str) -> str:
    """Drop scripts, media, comments and inline event handlers from a fragment."""
    soup = BeautifulSoup(html, 'html.parser')

    for tag in soup.find_all(STRIPPED_TAGS):
        tag.decompose()

    for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
        comment.extract()

    for tag in soup.find_all(True):
        for attr in [a for a in tag.attrs if a.lower().startswith('on')]:
            del tag[attr]

    return str(soup).strip()


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(v for v in values if v))


class ElementExtractor:
    """Builds a PageSnapshot from a Playwright page."""

    def __init__(self, byte_budget: int = SNAPSHOT_BYTE_BUDGET):
        self.byte_budget = byte_budget
        self.logger = StructuredLogger("element_extractor")

    async def extract(self, page) -> PageSnapshot:
        raw = await page.evaluate(EXTRACTION_SCRIPT, EXTRACTION_KEYWORDS)
        return self.build_snapshot(raw or {})

    def build_snapshot(self, raw: Dict[str, Any]) -> PageSnapshot:
        """Sanitize raw fragments and enforce the byte budget, in bucket order."""
        remaining = self.byte_budget
        kept: Dict[str, List[str]] = {bucket: [] for bucket in BUCKETS}
        dropped = 0

        for bucket in BUCKETS:
            for fragment in _unique(sanitize_fragment(f) for f in raw.get(bucket) or []):
                size = len(fragment.encode('utf-8'))
                if size > remaining:
                    dropped += 1
                    continue
                kept[bucket].append(fragment)
                remaining -= size

        if dropped:
            self.logger.debug("Snapshot fragments dropped over budget", {
                "dropped": dropped, "byte_budget": self.byte_budget
            })

        return PageSnapshot(
            forms=tuple(kept['forms']),
            buttons=tuple(kept['buttons']),
            links=tuple(kept['links']),
            relevant_sections=tuple(kept['sections']),
        )

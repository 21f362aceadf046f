#!/usr/bin/env python3
"""
DOM serialization for captured and live screens

The browser side is a pure function evaluated in the page; its output is
normalized in Python so stored trees always follow the same rules. A static
BeautifulSoup path applies the same rules to saved HTML for offline use.
"""

import re
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from bs4 import BeautifulSoup, NavigableString, Tag
from .dom_node import DomNode, TEXT_TAG

logger = logging.getLogger(__name__)

MAX_DEPTH = 30

SKIP_TAGS = {'script', 'style', 'noscript', 'link'}

# Elements injected by the capture and replay tooling itself
TOOL_ELEMENT_IDS = {'capture-modal', 'capture-overlay', 'replay-wait-overlay'}

STYLE_PROPS = [
    'color', 'backgroundColor', 'fontSize', 'fontWeight', 'fontFamily',
    'padding', 'margin', 'border', 'borderRadius',
    'display', 'position', 'top', 'left',
    'width', 'height', 'opacity', 'visibility', 'overflow',
    'textAlign', 'lineHeight', 'textDecoration',
    'boxShadow', 'transform', 'zIndex',
    'flexDirection', 'justifyContent', 'alignItems', 'gap',
]

STYLED_TAGS = {
    'a', 'button', 'input', 'select', 'textarea', 'label',
    'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
    'p', 'span', 'strong', 'em', 'b', 'i', 'u',
    'td', 'th', 'li', 'img', 'svg',
    'nav', 'header', 'footer', 'main', 'section', 'aside',
}

BORING_VALUES = {
    '', 'none', 'normal', 'auto', '0px', 'rgba(0, 0, 0, 0)',
    'static', 'visible', 'ltr',
}

KEPT_ATTRIBUTES = {
    'id', 'class', 'name', 'type', 'href', 'src', 'alt', 'title',
    'value', 'placeholder', 'role', 'aria-label', 'data-testid',
    'action', 'method', 'target', 'disabled', 'checked', 'selected',
    'readonly', 'required', 'for', 'colspan', 'rowspan',
}

# Layout containers that legitimately report no offsetParent
LAYOUT_TAGS = {'body', 'html', 'thead', 'tbody', 'tr'}

FORM_TAGS = {'input', 'textarea', 'select'}

RECT_KEYS = ('x', 'y', 'w', 'h')

SERIALIZE_DOM_JS = """
(rules) => {
    const styledTags = new Set(rules.styledTags);
    const skipTags = new Set(rules.skipTags);
    const toolIds = new Set(rules.toolIds);
    const boring = new Set(rules.boringValues);
    const keptAttrs = new Set(rules.attributes);
    const layoutTags = new Set(rules.layoutTags);

    function extractStyles(el) {
        try {
            const computed = getComputedStyle(el);
            const styles = {};
            for (const prop of rules.styleProps) {
                const val = computed[prop];
                if (val && !boring.has(val)) styles[prop] = val;
            }
            return Object.keys(styles).length ? styles : null;
        } catch (e) {
            return null;
        }
    }

    function extractRect(el) {
        try {
            const r = el.getBoundingClientRect();
            return {x: Math.round(r.x), y: Math.round(r.y),
                    w: Math.round(r.width), h: Math.round(r.height)};
        } catch (e) {
            return null;
        }
    }

    function keepAttr(name) {
        if (name.startsWith('on') || name.startsWith('data-v-')) return false;
        return keptAttrs.has(name) || name.startsWith('data-');
    }

    function serialize(el, depth) {
        if (depth > rules.maxDepth) return null;
        if (el.nodeType === 3) {
            const text = el.textContent.trim();
            return text ? {t: '#text', v: text} : null;
        }
        if (el.nodeType !== 1) return null;

        const tag = el.tagName.toLowerCase();
        if (skipTags.has(tag) || toolIds.has(el.id)) return null;

        const node = {t: tag};
        const attrs = {};
        for (const attr of el.attributes) {
            if (keepAttr(attr.name)) attrs[attr.name] = attr.value;
        }
        if (Object.keys(attrs).length) node.a = attrs;

        if (el.offsetParent === null && !layoutTags.has(tag) &&
            el.offsetWidth === 0 && el.offsetHeight === 0) {
            node.hidden = true;
        }

        if (styledTags.has(tag) && !node.hidden) {
            const css = extractStyles(el);
            if (css) node.css = css;
            const rect = extractRect(el);
            if (rect) node.rect = rect;
        }

        if (tag === 'input' || tag === 'textarea' || tag === 'select') {
            if (el.value) node.val = el.value;
            if (el.checked) node.checked = true;
        }

        const children = [];
        for (const child of el.childNodes) {
            const serialized = serialize(child, depth + 1);
            if (serialized) children.push(serialized);
        }
        if (children.length) node.c = children;
        return node;
    }

    return serialize(document.body, 0);
}
"""

SNAPSHOT_JS = """
(rules) => {
    const serializeDom = %s;
    const clone = document.documentElement.cloneNode(true);
    for (const id of rules.toolIds) {
        const el = clone.querySelector('#' + id);
        if (el) el.remove();
    }
    const doctype = document.doctype ? '<!DOCTYPE html>\\n' : '';
    return {
        html: doctype + clone.outerHTML,
        dom: serializeDom(rules),
        url: location.href,
        title: document.title,
        scroll: {x: Math.round(scrollX), y: Math.round(scrollY)},
        viewport: {w: innerWidth, h: innerHeight}
    };
}
""" % SERIALIZE_DOM_JS.strip()

PAGE_META_JS = """
() => ({
    url: location.href,
    title: document.title,
    scroll: {x: Math.round(scrollX), y: Math.round(scrollY)},
    viewport: {w: innerWidth, h: innerHeight}
})
"""


@dataclass
class PageSnapshot:
    """HTML, DOM tree and page metadata taken in one evaluation"""
    html: str
    dom: Optional[DomNode]
    url: str
    title: str = ''
    scroll: Dict[str, int] = None
    viewport: Dict[str, int] = None

    def dom_document(self) -> Dict[str, Any]:
        """The dom.json document stored with each screen"""
        return {
            'body': self.dom.to_dict() if self.dom else None,
            'url': self.url,
            'title': self.title,
            'viewport': self.viewport,
        }


def is_boring(value: Any) -> bool:
    if value is None:
        return True
    normalized = re.sub(r'\s+', ' ', str(value).strip())
    return normalized in BORING_VALUES or normalized.replace(' ', '') == 'rgba(0,0,0,0)'


def keep_attribute(name: str) -> bool:
    if name.startswith('on') or name.startswith('data-v-'):
        return False
    return name in KEPT_ATTRIBUTES or name.startswith('data-')


def inject_base_href(html: str, origin: str) -> str:
    """Add <base href="origin/"> after <head> so relative assets resolve offline"""
    if not origin or re.search(r'<base\s', html, flags=re.IGNORECASE):
        return html
    base_tag = f'<base href="{origin.rstrip("/")}/">'
    if re.search(r'<head(\s[^>]*)?>', html, flags=re.IGNORECASE):
        return re.sub(r'(<head(?:\s[^>]*)?>)', lambda m: m.group(1) + base_tag, html, count=1, flags=re.IGNORECASE)
    return base_tag + html


class DomSerializer:
    """Turns a live page or saved HTML into a DomNode tree"""

    def __init__(self, max_depth: int = MAX_DEPTH):
        self.max_depth = max_depth
        self.stats = {'nodes_serialized': 0, 'fields_dropped': 0}

    @property
    def rules(self) -> Dict[str, Any]:
        """Serialization rules handed to the in-page function"""
        return {
            'maxDepth': self.max_depth,
            'styleProps': STYLE_PROPS,
            'styledTags': sorted(STYLED_TAGS),
            'skipTags': sorted(SKIP_TAGS),
            'toolIds': sorted(TOOL_ELEMENT_IDS),
            'boringValues': sorted(BORING_VALUES),
            'attributes': sorted(KEPT_ATTRIBUTES),
            'layoutTags': sorted(LAYOUT_TAGS),
        }

    async def serialize(self, page) -> Optional[DomNode]:
        """Serialize the live page body; ``page`` needs an ``evaluate(fn, arg)`` coroutine"""
        raw = await page.evaluate(SERIALIZE_DOM_JS, self.rules)
        return self.normalize(raw)

    async def snapshot(self, page) -> PageSnapshot:
        """Take HTML, DOM and page metadata in a single evaluation"""
        raw = await page.evaluate(SNAPSHOT_JS, self.rules) or {}
        return PageSnapshot(
            html=raw.get('html', ''),
            dom=self.normalize(raw.get('dom')),
            url=raw.get('url', ''),
            title=raw.get('title', ''),
            scroll=raw.get('scroll') or {'x': 0, 'y': 0},
            viewport=raw.get('viewport') or {},
        )

    def normalize(self, raw: Optional[Dict], depth: int = 0) -> Optional[DomNode]:
        """Apply the serialization rules to a raw tree from the page

        Running this on its own output returns an equal tree.
        """
        if not raw or depth > self.max_depth:
            return None

        tag = raw.get('t')
        if tag == TEXT_TAG:
            text = (raw.get('v') or '').strip()
            return DomNode.text_node(text) if text else None
        if not tag:
            return None

        tag = str(tag).lower()
        attrs = raw.get('a') or {}
        if tag in SKIP_TAGS or attrs.get('id') in TOOL_ELEMENT_IDS:
            return None

        node = DomNode(
            tag=tag,
            attrs={name: str(value) for name, value in attrs.items() if keep_attribute(name)},
            hidden=bool(raw.get('hidden', False)),
        )
        self.stats['nodes_serialized'] += 1

        if tag in STYLED_TAGS and not node.hidden:
            node.css = self._normalize_css(raw.get('css'))
            node.rect = self._normalize_rect(raw.get('rect'))

        if tag in FORM_TAGS:
            node.value = raw.get('val') or None
            node.checked = bool(raw.get('checked', False))

        for child in raw.get('c') or []:
            serialized = self.normalize(child, depth + 1)
            if serialized:
                node.children.append(serialized)

        return node

    def _normalize_css(self, css: Any) -> Dict[str, str]:
        if not css:
            return {}
        try:
            return {prop: str(value) for prop, value in css.items()
                    if prop in STYLE_PROPS and not is_boring(value)}
        except (AttributeError, TypeError) as e:
            self.stats['fields_dropped'] += 1
            logger.debug(f"Dropping unusable css subset: {e}")
            return {}

    def _normalize_rect(self, rect: Any) -> Optional[Dict[str, int]]:
        if not rect:
            return None
        try:
            return {key: int(round(float(rect[key]))) for key in RECT_KEYS}
        except (KeyError, TypeError, ValueError) as e:
            self.stats['fields_dropped'] += 1
            logger.debug(f"Dropping unusable rect: {e}")
            return None

    def serialize_html(self, html: str) -> Optional[DomNode]:
        """Serialize saved HTML without a browser

        There is no layout here, so nodes carry no css or rect; an element is
        hidden when it has the ``hidden`` attribute or an inline display:none.
        """
        soup = BeautifulSoup(html or '', 'html.parser')
        body = soup.find('body') or soup
        if not isinstance(body, Tag) or body.name != 'body':
            wrapper = DomNode(tag='body')
            for child in body.children:
                serialized = self._build_static_node(child, 1)
                if serialized:
                    wrapper.children.append(serialized)
            return wrapper
        return self._build_static_node(body, 0)

    def _build_static_node(self, element, depth: int) -> Optional[DomNode]:
        if depth > self.max_depth:
            return None

        if isinstance(element, NavigableString):
            # Comments, doctypes and CDATA are NavigableString subclasses
            if type(element) is not NavigableString:
                return None
            text = str(element).strip()
            return DomNode.text_node(text) if text else None

        if not isinstance(element, Tag):
            return None

        tag = element.name.lower()
        if tag in SKIP_TAGS or element.get('id') in TOOL_ELEMENT_IDS:
            return None

        attrs = {}
        for name, value in element.attrs.items():
            if keep_attribute(name):
                attrs[name] = value if isinstance(value, str) else ' '.join(value)

        inline_style = (element.get('style') or '').replace(' ', '').lower()
        node = DomNode(
            tag=tag,
            attrs=attrs,
            hidden=element.has_attr('hidden') or 'display:none' in inline_style,
        )

        if tag == 'input':
            node.value = element.get('value') or None
            node.checked = element.has_attr('checked')
        elif tag == 'textarea':
            node.value = element.get_text() or None
        elif tag == 'select':
            selected = element.find('option', selected=True) or element.find('option')
            if selected:
                node.value = selected.get('value') or selected.get_text().strip() or None

        for child in element.children:
            serialized = self._build_static_node(child, depth + 1)
            if serialized:
                node.children.append(serialized)

        return node


def load_dom_document(data: Optional[Dict]) -> Optional[DomNode]:
    """Read the body tree out of a stored dom.json document"""
    if not data:
        return None
    body = data.get('body', data) if isinstance(data, dict) else None
    if not body:
        return None
    return DomNode.from_dict(body)

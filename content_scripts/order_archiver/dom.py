"""Page model over BeautifulSoup.

A content script talks to a live document: it queries with CSS selectors, reads
and writes inline styles, listens for clicks and watches child-list mutations.
`Page` provides the same surface for a parsed HTML document so the engine can
run unchanged against a saved page, a test fixture or a document mirrored from
a browser.

Notes:
- bs4 `Tag` equality is structural, so every membership check in this package
  goes through identity (`is`) or `id()` keyed maps, never `==` / `in`.
- Selector errors (soupsieve raises on unsupported syntax) are lookup failures:
  logged at debug level and read as "no match".
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any

import soupsieve
from bs4 import BeautifulSoup, NavigableString, Tag

_LOGGER = logging.getLogger("order_archiver.dom")

_FACTORY = BeautifulSoup("", "html.parser")

_NON_RENDERED = frozenset({"head", "script", "style", "template", "noscript", "meta", "link", "title"})

DEFAULT_DISPLAY: dict[str, str] = {
    "address": "block",
    "article": "block",
    "aside": "block",
    "blockquote": "block",
    "body": "block",
    "button": "inline-block",
    "dd": "block",
    "details": "block",
    "div": "block",
    "dl": "block",
    "dt": "block",
    "fieldset": "block",
    "figcaption": "block",
    "figure": "block",
    "footer": "block",
    "form": "block",
    "h1": "block",
    "h2": "block",
    "h3": "block",
    "h4": "block",
    "h5": "block",
    "h6": "block",
    "header": "block",
    "hr": "block",
    "html": "block",
    "img": "inline",
    "input": "inline-block",
    "li": "list-item",
    "main": "block",
    "nav": "block",
    "ol": "block",
    "p": "block",
    "pre": "block",
    "section": "block",
    "select": "inline-block",
    "summary": "block",
    "table": "table",
    "tbody": "table-row-group",
    "td": "table-cell",
    "textarea": "inline-block",
    "tfoot": "table-footer-group",
    "th": "table-cell",
    "thead": "table-header-group",
    "tr": "table-row",
    "ul": "block",
}


# Queries
def is_element(node: Any) -> bool:
    return isinstance(node, Tag) and not isinstance(node, BeautifulSoup)


def query(root: Tag, selector: str) -> Tag | None:
    try:
        return soupsieve.select_one(selector, root)
    except Exception as e:
        _LOGGER.debug("selector lookup failed selector=%r err=%s", selector, e)
        return None


def query_all(root: Tag, selector: str) -> list[Tag]:
    try:
        return list(soupsieve.select(selector, root))
    except Exception as e:
        _LOGGER.debug("selector lookup failed selector=%r err=%s", selector, e)
        return []


def matches(element: Any, selector: str) -> bool:
    if not is_element(element):
        return False
    try:
        return bool(soupsieve.match(selector, element))
    except Exception as e:
        _LOGGER.debug("selector match failed selector=%r err=%s", selector, e)
        return False


def closest(element: Tag, selector: str) -> Tag | None:
    """Nearest inclusive ancestor matching `selector`."""
    try:
        return soupsieve.closest(selector, element)
    except Exception as e:
        _LOGGER.debug("closest lookup failed selector=%r err=%s", selector, e)
        return None


def contains(container: Tag, element: Any) -> bool:
    if element is container:
        return True
    return any(parent is container for parent in getattr(element, "parents", ()))


def ancestors_within(element: Tag, root: Tag) -> Iterator[Tag]:
    """Ancestors of `element` up to, but excluding, `root`."""
    for parent in element.parents:
        if parent is root or not is_element(parent):
            return
        yield parent


def element_children(element: Tag) -> list[Tag]:
    return [child for child in element.children if is_element(child)]


def text_content(element: Any) -> str:
    if element is None:
        return ""
    try:
        return element.get_text()
    except Exception:
        return ""


def text_nodes(root: Tag) -> Iterator[NavigableString]:
    """Rendered text nodes under `root` (comments, doctype and script bodies excluded)."""
    for node in root.descendants:
        if type(node) is not NavigableString:
            continue
        parent = node.parent
        if parent is not None and parent.name in _NON_RENDERED:
            continue
        yield node


def index_of(items: Iterable[Any], element: Any) -> int:
    for i, item in enumerate(items):
        if item is element:
            return i
    return -1


# Classes
def class_list(element: Tag) -> list[str]:
    raw = element.get("class")
    if raw is None:
        return []
    if isinstance(raw, str):
        return raw.split()
    return [str(c) for c in raw]


def has_class(element: Any, name: str) -> bool:
    if not is_element(element):
        return False
    return name in class_list(element)


def add_class(element: Tag, *names: str) -> None:
    current = class_list(element)
    for name in names:
        if name not in current:
            current.append(name)
    element["class"] = current


def remove_class(element: Tag, *names: str) -> None:
    current = [c for c in class_list(element) if c not in names]
    if current:
        element["class"] = current
    elif element.has_attr("class"):
        del element["class"]


# Inline styles
def parse_style(element: Tag) -> dict[str, str]:
    raw = element.get("style") or ""
    if isinstance(raw, list):
        raw = " ".join(raw)
    out: dict[str, str] = {}
    for decl in str(raw).split(";"):
        prop, sep, value = decl.partition(":")
        if not sep:
            continue
        prop = prop.strip().lower()
        if prop:
            out[prop] = value.strip()
    return out


def _write_style(element: Tag, props: dict[str, str]) -> None:
    if props:
        element["style"] = "; ".join(f"{k}: {v}" for k, v in props.items())
    elif element.has_attr("style"):
        del element["style"]


def style_property(element: Tag, prop: str) -> str:
    return parse_style(element).get(prop.lower(), "")


def set_style_property(element: Tag, prop: str, value: str | None) -> None:
    props = parse_style(element)
    key = prop.lower()
    if value is None or value == "":
        props.pop(key, None)
    else:
        props[key] = value
    _write_style(element, props)


def set_styles(element: Tag, styles: dict[str, str]) -> None:
    props = parse_style(element)
    for key, value in styles.items():
        props[key.lower()] = value
    _write_style(element, props)


def default_display(element: Tag) -> str:
    name = (element.name or "").lower()
    if name in _NON_RENDERED:
        return "none"
    return DEFAULT_DISPLAY.get(name, "inline")


def computed_display(element: Tag) -> str:
    inline = style_property(element, "display")
    return inline or default_display(element)


# Construction
def new_element(
    name: str,
    *,
    classes: Iterable[str] = (),
    attrs: dict[str, str] | None = None,
    text: str | None = None,
    styles: dict[str, str] | None = None,
) -> Tag:
    el = _FACTORY.new_tag(name)
    for key, value in (attrs or {}).items():
        el[key] = value
    cls = [c for c in classes if c]
    if cls:
        el["class"] = cls
    if styles:
        set_styles(el, styles)
    if text is not None:
        el.string = text
    return el


def set_text(element: Tag, text: str) -> None:
    element.clear()
    element.append(NavigableString(text))


def parse_fragment(markup: str) -> list[Tag]:
    frag = BeautifulSoup(markup, "html.parser")
    return [node.extract() for node in list(frag.contents) if is_element(node)]


# Events and mutations
@dataclass
class MutationRecord:
    """Child-list change, shaped like the browser's MutationRecord."""

    target: Tag | None
    added: list[Any] = field(default_factory=list)
    removed: list[Any] = field(default_factory=list)


@dataclass
class Event:
    type: str
    target: Tag
    current_target: Tag | None = None
    default_prevented: bool = False
    propagation_stopped: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True


Listener = Callable[[Event], Any]
MutationCallback = Callable[[list[MutationRecord]], None]


class Page:
    """A document plus the event and mutation plumbing a content script relies on.

    Host-side changes made through `append_child` / `insert_before` / `remove` /
    `append_html` publish mutation records to observers. Direct bs4 edits do
    not; use `publish()` to announce them.
    """

    def __init__(self, markup: str | BeautifulSoup = "", *, parser: str = "html.parser") -> None:
        if isinstance(markup, BeautifulSoup):
            self.document = markup
        else:
            self.document = BeautifulSoup(markup or "<html><body></body></html>", parser)
        self._observers: list[MutationCallback] = []
        self._listeners: dict[int, tuple[Tag, dict[str, list[Listener]]]] = {}

    @property
    def body(self) -> Tag:
        body = self.document.body
        return body if body is not None else self.document

    def html(self) -> str:
        return str(self.document)

    def query(self, selector: str) -> Tag | None:
        return query(self.document, selector)

    def query_all(self, selector: str) -> list[Tag]:
        return query_all(self.document, selector)

    # Mutation observation
    def observe(self, callback: MutationCallback) -> None:
        # Bound methods are rebuilt on each attribute access; equality still holds.
        if not any(cb == callback for cb in self._observers):
            self._observers.append(callback)

    def disconnect(self, callback: MutationCallback) -> None:
        self._observers = [cb for cb in self._observers if cb != callback]

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def publish(self, records: list[MutationRecord]) -> None:
        if not records:
            return
        for callback in list(self._observers):
            try:
                callback(list(records))
            except Exception:
                _LOGGER.exception("mutation_observer_failed")

    def append_child(self, parent: Tag, child: Tag) -> Tag:
        parent.append(child)
        self.publish([MutationRecord(target=parent, added=[child])])
        return child

    def insert_before(self, reference: Tag, new: Tag) -> Tag:
        parent = reference.parent
        reference.insert_before(new)
        self.publish([MutationRecord(target=parent, added=[new])])
        return new

    def remove(self, node: Tag) -> Tag:
        parent = node.parent
        node.extract()
        self.publish([MutationRecord(target=parent, removed=[node])])
        return node

    def append_html(self, parent: Tag, markup: str) -> list[Tag]:
        nodes = parse_fragment(markup)
        for node in nodes:
            parent.append(node)
        self.publish([MutationRecord(target=parent, added=list(nodes))])
        return nodes

    # Events
    def add_event_listener(self, element: Tag, event_type: str, handler: Listener) -> None:
        _, by_type = self._listeners.setdefault(id(element), (element, {}))
        handlers = by_type.setdefault(event_type, [])
        if not any(h is handler for h in handlers):
            handlers.append(handler)

    def remove_event_listener(self, element: Tag, event_type: str, handler: Listener) -> None:
        entry = self._listeners.get(id(element))
        if entry is None or entry[0] is not element:
            return
        by_type = entry[1]
        by_type[event_type] = [h for h in by_type.get(event_type, []) if h is not handler]
        if not by_type[event_type]:
            del by_type[event_type]
        if not by_type:
            del self._listeners[id(element)]

    def listener_count(self, element: Tag, event_type: str) -> int:
        entry = self._listeners.get(id(element))
        if entry is None or entry[0] is not element:
            return 0
        return len(entry[1].get(event_type, []))

    async def dispatch(self, element: Tag, event_type: str) -> Event:
        event = Event(type=event_type, target=element)
        path = [element, *(p for p in element.parents if is_element(p))]
        for node in path:
            entry = self._listeners.get(id(node))
            if entry is None or entry[0] is not node:
                continue
            event.current_target = node
            for handler in list(entry[1].get(event_type, [])):
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            if event.propagation_stopped:
                break
        return event

    async def click(self, element: Tag) -> Event:
        return await self.dispatch(element, "click")

"""Page adapters: queryable, mutation-observable element trees."""

from __future__ import annotations

import pathlib
import weakref
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Sequence, Tuple

from bs4 import BeautifulSoup, Tag

from .errors import UnsupportedFileTypeError
from .structures import PageMutation, ProcessingState

MutationCallback = Callable[[Sequence[PageMutation]], None]

STATE_ATTRIBUTE = "data-interlinear"
OUTPUT_CLASS = "interlinear-translation"
OUTPUT_ATTRIBUTE = "data-interlinear-output"

INLINE_TAGS = frozenset(
    {"a", "abbr", "b", "cite", "code", "em", "i", "label", "small", "span", "strong", "sub", "sup"}
)
EDITABLE_TAGS = frozenset({"input", "textarea", "select", "option", "button"})
SKIPPED_TAGS = frozenset({"script", "style", "noscript", "template"})


class BasePage(ABC):
    """Common base class for pages.

    Processing state is kept out of band, keyed by element identity, for
    environments where elements cannot carry metadata of their own. Entries
    hold weak references, so elements must support them; an element that is
    garbage collected drops out of the table.
    """

    def __init__(self) -> None:
        self._states: Dict[int, Tuple["weakref.ReferenceType[Any]", ProcessingState]] = {}
        self._listeners: List[MutationCallback] = []

    @abstractmethod
    def select(self, selectors: Sequence[str]) -> List[Any]:
        """Return the elements matching any selector, in document order."""

    @abstractmethod
    def text_of(self, element: Any) -> str:
        """Return the element's text content."""

    @abstractmethod
    def is_excluded(self, element: Any) -> bool:
        """Whether structural guards rule the element out."""

    @abstractmethod
    def insert_output(self, element: Any, text: str) -> Any:
        """Place an output node next to ``element`` and return its handle."""

    @abstractmethod
    def set_output(self, handle: Any, text: str) -> None:
        """Replace the text of an output node."""

    @abstractmethod
    def remove_output(self, handle: Any) -> None:
        """Detach an output node from the page."""

    def get_state(self, element: Any) -> ProcessingState:
        entry = self._states.get(id(element))
        if entry is None or entry[0]() is not element:
            return ProcessingState.UNTOUCHED
        return entry[1]

    def set_state(self, element: Any, state: ProcessingState) -> None:
        key = id(element)
        if state is ProcessingState.UNTOUCHED:
            self._states.pop(key, None)
            return
        entry = self._states.get(key)
        if entry is not None and entry[0]() is element:
            self._states[key] = (entry[0], state)
        else:
            self._states[key] = (weakref.ref(element, self._discard(key)), state)

    def _discard(self, key: int) -> Callable[["weakref.ReferenceType[Any]"], None]:
        def callback(ref: "weakref.ReferenceType[Any]") -> None:
            entry = self._states.get(key)
            if entry is not None and entry[0] is ref:
                del self._states[key]

        return callback

    def subscribe(self, callback: MutationCallback) -> Callable[[], None]:
        """Register a change listener and return a function that removes it."""

        self._listeners.append(callback)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def emit(self, mutations: Sequence[PageMutation]) -> None:
        for listener in list(self._listeners):
            listener(mutations)


class HtmlPage(BasePage):
    """An HTML document held in memory, with processing state in attributes."""

    def __init__(self, markup: str, *, parser: str = "html.parser") -> None:
        super().__init__()
        self.parser = parser
        self.soup = BeautifulSoup(markup, parser)

    @classmethod
    def from_file(cls, path: pathlib.Path) -> "HtmlPage":
        if path.suffix.lower() not in {".html", ".htm", ".xhtml"}:
            raise UnsupportedFileTypeError(
                "This file type isn't supported. Please use a saved .html page."
            )
        return cls(path.read_text(encoding="utf-8"))

    def save(self, destination: pathlib.Path) -> None:
        destination.write_text(self.render(), encoding="utf-8")

    def render(self) -> str:
        return str(self.soup)

    # --- Page interface ---------------------------------------------------

    def select(self, selectors: Sequence[str]) -> List[Tag]:
        if not selectors:
            return []
        return list(self.soup.select(", ".join(selectors)))

    def text_of(self, element: Tag) -> str:
        return element.get_text()

    def get_state(self, element: Tag) -> ProcessingState:
        value = element.get(STATE_ATTRIBUTE)
        if not value:
            return ProcessingState.UNTOUCHED
        try:
            return ProcessingState(value)
        except ValueError:
            return ProcessingState.ATTEMPTED

    def set_state(self, element: Tag, state: ProcessingState) -> None:
        if state is ProcessingState.UNTOUCHED:
            element.attrs.pop(STATE_ATTRIBUTE, None)
        else:
            element[STATE_ATTRIBUTE] = state.value

    def is_excluded(self, element: Tag) -> bool:
        if element.name in SKIPPED_TAGS or element.name in EDITABLE_TAGS:
            return True
        if _is_output(element):
            return True
        for ancestor in element.parents:
            if not isinstance(ancestor, Tag) or ancestor is self.soup:
                break
            if ancestor.name == "form" or ancestor.name in EDITABLE_TAGS:
                return True
            if ancestor.name in SKIPPED_TAGS or _is_output(ancestor):
                return True
            if _is_editable(ancestor):
                return True
        if _is_editable(element):
            return True
        following = element.find_next_sibling()
        return following is not None and _is_output(following)

    def insert_output(self, element: Tag, text: str) -> Tag:
        tag_name = "span" if element.name in INLINE_TAGS else "div"
        output = self.soup.new_tag(tag_name, attrs={"class": OUTPUT_CLASS, OUTPUT_ATTRIBUTE: ""})
        output.string = text
        element.insert_after(output)
        return output

    def set_output(self, handle: Tag, text: str) -> None:
        handle.string = text

    def remove_output(self, handle: Tag) -> None:
        handle.decompose()

    # --- Host-side mutations ---------------------------------------------

    def append_html(self, markup: str, parent_selector: str | None = None) -> List[Tag]:
        """Append parsed markup under the first match of ``parent_selector``."""

        parent = self._resolve_parent(parent_selector)
        fragment = BeautifulSoup(markup, self.parser)
        nodes = list(fragment.contents)
        for node in nodes:
            parent.append(node.extract())
        self.emit([PageMutation(added_nodes=len(nodes))])
        return [node for node in nodes if isinstance(node, Tag)]

    def remove(self, selector: str) -> int:
        """Remove every element matching ``selector``."""

        matches = self.soup.select(selector)
        for element in matches:
            element.extract()
        if matches:
            self.emit([PageMutation(removed_nodes=len(matches))])
        return len(matches)

    def set_attribute(self, selector: str, name: str, value: str) -> int:
        matches = self.soup.select(selector)
        for element in matches:
            element[name] = value
        if matches:
            self.emit([PageMutation(attribute=name)])
        return len(matches)

    def outputs(self) -> List[Tag]:
        return list(self.soup.select(f".{OUTPUT_CLASS}"))

    def _resolve_parent(self, parent_selector: str | None) -> Tag:
        if parent_selector:
            parent = self.soup.select_one(parent_selector)
            if parent is not None:
                return parent
        if self.soup.body is not None:
            return self.soup.body
        return self.soup


def _is_output(element: Tag) -> bool:
    if element.has_attr(OUTPUT_ATTRIBUTE):
        return True
    classes = element.get("class") or []
    if isinstance(classes, str):
        classes = classes.split()
    return OUTPUT_CLASS in classes


def _is_editable(element: Tag) -> bool:
    value = element.get("contenteditable")
    if value is None:
        return False
    return str(value).strip().lower() != "false"

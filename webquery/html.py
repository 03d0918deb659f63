"""Parsed HTML documents: links, base href and form submission data."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator
from urllib.parse import urljoin

from bs4 import BeautifulSoup
from bs4.element import Tag

from .constants import FORM_URLENCODED
from .errors import ElementNotFoundError
from .url import resolve_url

# Controls that never contribute to the form data set.
_SUBMITTABLE_TYPES = frozenset({"submit", "button", "image"})
_SKIPPED_TYPES = frozenset({"reset", "file"})


@dataclass(frozen=True, slots=True)
class HtmlForm:
    """A form with its resolved action and default submission data."""

    index: int
    name: str | None
    action: str
    method: str
    enctype: str
    data: tuple[tuple[str, str], ...]


def _control_value(control: Tag) -> str | None:
    if control.name == "select":
        option = control.find("option", selected=True) or control.find("option")
        if option is None:
            return ""
        value = option.get("value")
        return option.get_text(strip=True) if value is None else value

    if control.name == "textarea":
        return control.get_text()

    input_type = (control.get("type") or "text").lower()
    if input_type in {"checkbox", "radio"}:
        if not control.has_attr("checked"):
            return None
        return control.get("value") or "on"
    return control.get("value") or ""


def form_data(form: Tag) -> list[tuple[str, str]]:
    """Default data set of a form: enabled, named, non-button controls."""

    data: list[tuple[str, str]] = []
    for control in form.find_all(["input", "select", "textarea"]):
        name = control.get("name")
        if not name or control.has_attr("disabled"):
            continue
        input_type = (control.get("type") or "text").lower() if control.name == "input" else ""
        if input_type in _SUBMITTABLE_TYPES or input_type in _SKIPPED_TYPES:
            continue
        value = _control_value(control)
        if value is None:
            continue
        data.append((name, value))
    return data


class ParsedHtml:
    """An HTML document parsed with BeautifulSoup/lxml, tied to the URL it came from."""

    def __init__(self, html: str | bytes, url: str | None = None) -> None:
        self.soup = BeautifulSoup(html, "lxml")
        self.url = url

    def __repr__(self) -> str:
        return f"ParsedHtml(url={self.url!r})"

    @property
    def base_url(self) -> str | None:
        """`<base href>` resolved against the document URL, else the document URL."""

        base = self.soup.find("base", href=True)
        if base is None:
            return self.url
        href = str(base["href"]).strip()
        return urljoin(self.url, href) if self.url else href

    @property
    def title(self) -> str | None:
        if self.soup.title and self.soup.title.get_text(strip=True):
            return self.soup.title.get_text(" ", strip=True)
        return None

    def select(self, selector: str) -> list[Tag]:
        return self.soup.select(selector)

    def hrefs(self) -> Iterator[str]:
        """Raw href values of anchors and areas, in document order."""

        for element in self.soup.find_all(["a", "area"], href=True):
            yield str(element["href"])

    def links(self) -> Iterator[str]:
        """Absolute http(s) link targets; links that cannot be resolved are skipped."""

        base_url = self.base_url or ""
        for href in self.hrefs():
            resolved = resolve_url(base_url, href)
            if resolved:
                yield resolved

    def forms(self) -> list[HtmlForm]:
        base_url = self.base_url or ""
        forms: list[HtmlForm] = []
        for index, element in enumerate(self.soup.find_all("form")):
            forms.append(self._form(index, element, base_url))
        return forms

    def form(self, selector: str | int) -> HtmlForm:
        """Pick a form by CSS selector or zero-based index.

        Raises `ElementNotFoundError` when nothing matches.
        """

        if isinstance(selector, int):
            forms = self.forms()
            if 0 <= selector < len(forms):
                return forms[selector]
            raise ElementNotFoundError(
                f"No HTML form at index {selector} ({len(forms)} form(s) in {self.url})"
            )

        base_url = self.base_url or ""
        elements = self.soup.find_all("form")
        for match in self.select(selector):
            if match.name != "form":
                continue
            index = next(i for i, element in enumerate(elements) if element is match)
            return self._form(index, match, base_url)
        raise ElementNotFoundError(f"No HTML form matches {selector!r} in {self.url}")

    @staticmethod
    def _form(index: int, element: Tag, base_url: str) -> HtmlForm:
        method = (element.get("method") or "get").strip().upper()
        return HtmlForm(
            index=index,
            name=element.get("name") or element.get("id"),
            action=urljoin(base_url, (element.get("action") or "").strip()),
            method="POST" if method == "POST" else "GET",
            enctype=(element.get("enctype") or FORM_URLENCODED).strip().lower(),
            data=tuple(form_data(element)),
        )


__all__ = ["HtmlForm", "ParsedHtml", "form_data"]

"""
DOM accessibility scan over the rendered page.

Rules follow axe-core ids, impacts and WCAG tags so reports stay comparable
with axe output. Only static DOM checks are performed; nothing is evaluated
against computed styles.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from bs4 import BeautifulSoup, FeatureNotFound, Tag

from webgate.config import AccessibilitySettings, Config
from webgate.fsutil import write_json

logger = logging.getLogger(__name__)

MAX_VIOLATIONS = 100
MAX_NODES_PER_VIOLATION = 50
MAX_HTML_SNIPPET_LENGTH = 500
MAX_FAILURE_SUMMARY_LENGTH = 1000

IMPACT_LEVELS = ("critical", "serious", "moderate", "minor")
HELP_BASE = "https://dequeuniversity.com/rules/axe/4.10/"
UNLABELLED_INPUT_TYPES = {"hidden", "submit", "reset", "button", "image"}


@dataclass(frozen=True)
class Rule:
    id: str
    impact: str
    tags: tuple[str, ...]
    description: str
    help: str
    failure: str
    check: Callable[[BeautifulSoup], list[Tag]]


def soup_of(html: str) -> BeautifulSoup:
    try:
        return BeautifulSoup(html, "lxml")
    except FeatureNotFound:
        return BeautifulSoup(html, "html.parser")


def _text(tag: Tag) -> str:
    return re.sub(r"\s+", " ", tag.get_text(" ", strip=True)).strip()


def _has_aria_name(tag: Tag) -> bool:
    return bool((tag.get("aria-label") or "").strip() or (tag.get("aria-labelledby") or "").strip() or (tag.get("title") or "").strip())


def _is_hidden(tag: Tag) -> bool:
    return tag.get("aria-hidden") == "true" or tag.has_attr("hidden")


def _check_image_alt(soup: BeautifulSoup) -> list[Tag]:
    nodes = []
    for img in soup.find_all("img"):
        if _is_hidden(img) or img.get("role") in ("presentation", "none"):
            continue
        if not img.has_attr("alt") and not _has_aria_name(img):
            nodes.append(img)
    return nodes


def _check_html_lang(soup: BeautifulSoup) -> list[Tag]:
    html = soup.find("html")
    if html is None:
        return []
    if not (html.get("lang") or "").strip():
        return [html]
    return []


def _check_document_title(soup: BeautifulSoup) -> list[Tag]:
    title = soup.find("title")
    if title is None or not title.get_text(strip=True):
        html = soup.find("html")
        return [html] if html is not None else []
    return []


def _check_link_name(soup: BeautifulSoup) -> list[Tag]:
    nodes = []
    for link in soup.find_all("a", href=True):
        if _is_hidden(link) or _text(link) or _has_aria_name(link):
            continue
        if any((img.get("alt") or "").strip() for img in link.find_all("img")):
            continue
        nodes.append(link)
    return nodes


def _check_button_name(soup: BeautifulSoup) -> list[Tag]:
    nodes = []
    for button in soup.find_all("button"):
        if _is_hidden(button) or _text(button) or _has_aria_name(button):
            continue
        nodes.append(button)
    for button in soup.find_all("input", attrs={"type": re.compile(r"^(submit|button|reset)$", re.I)}):
        if (button.get("value") or "").strip() or _has_aria_name(button):
            continue
        nodes.append(button)
    return nodes


def _check_label(soup: BeautifulSoup) -> list[Tag]:
    labelled_ids = {str(label.get("for")) for label in soup.find_all("label") if label.get("for")}
    nodes = []
    for field in soup.find_all(["input", "select", "textarea"]):
        if field.name == "input" and str(field.get("type") or "text").lower() in UNLABELLED_INPUT_TYPES:
            continue
        if _is_hidden(field) or _has_aria_name(field):
            continue
        if field.get("id") and str(field.get("id")) in labelled_ids:
            continue
        if field.find_parent("label") is not None:
            continue
        nodes.append(field)
    return nodes


def _check_duplicate_id(soup: BeautifulSoup) -> list[Tag]:
    seen: dict[str, Tag] = {}
    nodes = []
    for tag in soup.find_all(id=True):
        key = str(tag.get("id"))
        if key in seen:
            nodes.append(tag)
        else:
            seen[key] = tag
    return nodes


def _check_frame_title(soup: BeautifulSoup) -> list[Tag]:
    return [frame for frame in soup.find_all(["iframe", "frame"]) if not _is_hidden(frame) and not _has_aria_name(frame)]


def _check_meta_viewport(soup: BeautifulSoup) -> list[Tag]:
    nodes = []
    for meta in soup.find_all("meta", attrs={"name": re.compile(r"^viewport$", re.I)}):
        content = str(meta.get("content") or "").lower().replace(" ", "")
        if "user-scalable=no" in content or "user-scalable=0" in content:
            nodes.append(meta)
            continue
        match = re.search(r"maximum-scale=([\d.]+)", content)
        if match:
            try:
                if float(match.group(1)) < 2:
                    nodes.append(meta)
            except ValueError:
                continue
    return nodes


RULES: tuple[Rule, ...] = (
    Rule("image-alt", "critical", ("cat.text-alternatives", "wcag2a", "wcag111"),
         "Ensures <img> elements have alternate text or a role of none or presentation",
         "Images must have alternate text", "Element does not have an alt attribute", _check_image_alt),
    Rule("html-has-lang", "serious", ("cat.language", "wcag2a", "wcag311"),
         "Ensures every HTML document has a lang attribute",
         "<html> element must have a lang attribute", "The <html> element does not have a lang attribute", _check_html_lang),
    Rule("document-title", "serious", ("cat.text-alternatives", "wcag2a", "wcag242"),
         "Ensures each HTML document contains a non-empty <title> element",
         "Documents must have <title> element to aid in navigation", "Document does not have a non-empty <title> element",
         _check_document_title),
    Rule("link-name", "serious", ("cat.name-role-value", "wcag2a", "wcag244", "wcag412"),
         "Ensures links have discernible text",
         "Links must have discernible text", "Element does not have text that is visible to screen readers", _check_link_name),
    Rule("button-name", "critical", ("cat.name-role-value", "wcag2a", "wcag412"),
         "Ensures buttons have discernible text",
         "Buttons must have discernible text", "Element does not have inner text that is visible to screen readers",
         _check_button_name),
    Rule("label", "critical", ("cat.forms", "wcag2a", "wcag412", "wcag131"),
         "Ensures every form element has a label",
         "Form elements must have labels", "Form element does not have an implicit (wrapped) or explicit <label>", _check_label),
    Rule("duplicate-id", "minor", ("cat.parsing", "wcag2a", "wcag411"),
         "Ensures every id attribute value is unique",
         "id attribute value must be unique", "Document has multiple elements with the same id attribute", _check_duplicate_id),
    Rule("frame-title", "serious", ("cat.text-alternatives", "wcag2a", "wcag412"),
         "Ensures <iframe> and <frame> elements have an accessible name",
         "Frames must have an accessible name", "Element has no title attribute", _check_frame_title),
    Rule("meta-viewport", "critical", ("cat.sensory-and-visual-cues", "wcag2aa", "wcag144"),
         "Ensures <meta name=\"viewport\"> does not disable text scaling and zooming",
         "Zooming and scaling must not be disabled", "user-scalable or maximum-scale disables zooming", _check_meta_viewport),
)


def _css_path(tag: Tag) -> str:
    if tag.get("id"):
        return f"#{tag.get('id')}"
    parts = []
    node: Tag | None = tag
    while node is not None and node.name not in (None, "[document]"):
        parent = node.parent
        siblings = parent.find_all(node.name, recursive=False) if isinstance(parent, Tag) else []
        if len(siblings) > 1:
            position = next(idx for idx, sibling in enumerate(siblings, start=1) if sibling is node)
            parts.append(f"{node.name}:nth-of-type({position})")
        else:
            parts.append(node.name)
        node = parent if isinstance(parent, Tag) else None
    return " > ".join(reversed(parts))


def select_rules(settings: AccessibilitySettings | None) -> list[Rule]:
    if settings is None:
        return list(RULES)
    rules = list(RULES)
    if settings.include_rules:
        wanted = set(settings.include_rules)
        rules = [rule for rule in rules if rule.id in wanted]
    if settings.exclude_rules:
        unwanted = set(settings.exclude_rules)
        rules = [rule for rule in rules if rule.id not in unwanted]
    if settings.include_tags:
        tags = {tag.lower() for tag in settings.include_tags}
        rules = [rule for rule in rules if tags.intersection(rule.tags)]
    return rules


def evaluate_rules(html: str, settings: AccessibilitySettings | None = None) -> list[dict[str, Any]]:
    """Run the selected rules and return axe-shaped violation records."""
    soup = soup_of(html)
    violations: list[dict[str, Any]] = []
    for rule in select_rules(settings):
        hits = rule.check(soup)
        if not hits:
            continue
        violations.append(
            {
                "id": rule.id,
                "description": rule.description,
                "help": rule.help,
                "helpUrl": HELP_BASE + rule.id,
                "impact": rule.impact,
                "tags": list(rule.tags),
                "nodes": [{"target": [_css_path(tag)], "html": str(tag), "failureSummary": rule.failure} for tag in hits],
            }
        )
    if settings is not None and settings.exclude_tags:
        excluded = {tag.lower() for tag in settings.exclude_tags}
        violations = [v for v in violations if not excluded.intersection(t.lower() for t in v["tags"])]
    return violations


def count_by_impact(violations: list[dict[str, Any]]) -> dict[str, int]:
    counts = {level: 0 for level in IMPACT_LEVELS}
    for violation in violations:
        impact = violation.get("impact") or ""
        if impact in counts:
            counts[impact] += 1
    return counts


def sanitize_text(value: str | None, max_length: int) -> str:
    if not value:
        return ""
    normalized = re.sub(r"\s+", " ", value).strip()
    if len(normalized) > max_length:
        return normalized[:max_length] + "…"
    return normalized


def _wcag_sort_key(tag: str) -> tuple[int, str]:
    match = re.match(r"^wcag(\d+)", tag, re.I)
    return (int(match.group(1)) if match else 10**9, tag.lower())


def extract_details(violations: list[dict[str, Any]]) -> tuple[list[dict[str, Any]], dict[str, int]]:
    details = []
    dropped_nodes = 0
    for violation in violations[:MAX_VIOLATIONS]:
        nodes = violation.get("nodes") or []
        kept = nodes[:MAX_NODES_PER_VIOLATION]
        dropped_nodes += max(0, len(nodes) - len(kept))
        tags = [str(tag) for tag in violation.get("tags") or []]
        failure_summaries = [sanitize_text(node.get("failureSummary"), MAX_FAILURE_SUMMARY_LENGTH) for node in kept]
        details.append(
            {
                "id": str(violation.get("id") or "unknown-rule"),
                "description": str(violation.get("description") or ""),
                "help": str(violation.get("help") or ""),
                "helpUrl": str(violation.get("helpUrl") or ""),
                "impact": violation.get("impact"),
                "wcagTags": sorted((tag for tag in tags if re.match(r"^wcag\d+[a-z]?", tag, re.I)), key=_wcag_sort_key),
                "tags": tags,
                "nodes": [
                    {
                        "target": [str(item) for item in (node.get("target") or [])[:10]],
                        "htmlSnippet": sanitize_text(node.get("html"), MAX_HTML_SNIPPET_LENGTH),
                        "failureSummary": summary or None,
                    }
                    for node, summary in zip(kept, failure_summaries)
                ],
            }
        )
    metadata = {
        "totalViolations": len(violations),
        "keptViolations": len(details),
        "droppedViolations": max(0, len(violations) - len(details)),
        "droppedNodes": dropped_nodes,
    }
    return details, metadata


def run_accessibility_scan(page: Any, out_dir: Path, config: Config | None = None) -> dict[str, Any]:
    logger.debug("Running accessibility scan")
    html = page.content()
    violations = evaluate_rules(html, config.accessibility if config is not None else None)
    report_path = out_dir / "axe.json"
    write_json(report_path, {"url": getattr(page, "url", None), "violations": violations})

    details, metadata = extract_details(violations)
    return {
        "violations": len(violations),
        "countsByImpact": count_by_impact(violations),
        "reportPath": str(report_path),
        "details": details,
        "metadata": metadata,
    }

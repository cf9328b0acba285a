"""Ranked element locators for a fuzzy target phrase.

Locators are Playwright selector strings. A compiled step stores them as one
comma-separated candidate list; the UI driver tries them in order.
"""

import itertools
import re
from typing import Callable, Iterable, List

TOKEN_SPLIT_PATTERN = re.compile(r"[\s\-_.,;:!?'\"/\\()\[\]{}<>|&+*#@=]+")
CSS_IDENT_PATTERN = re.compile(r"^[a-z_][a-z0-9_-]*$")

TEXT_TAGS = ["a", "button", "span", "div", "li", "label", "h1", "h2", "h3", "h4", "td", "th"]
PARTIAL_TEXT_TAGS = ["a", "button", "li", "span"]
TEST_ATTRIBUTES = ["data-testid", "data-test", "data-qa", "data-cy", "data-test-id", "data-automation-id"]
NAV_CONTAINERS = ["nav", ".sidebar", ".menu", "header", "footer", "[role='navigation']"]
COMPOUND_SUFFIXES = ["btn", "button", "link", "item", "tab", "menu"]
COMPOUND_PREFIXES = ["btn", "nav", "menu"]
ACCESSIBILITY_ATTRIBUTES = ["aria-label", "title", "alt", "placeholder"]
ARIA_ROLES = ["button", "link", "menuitem", "tab", "option", "treeitem"]

CONTENT_SUFFIXES = ["content", "page", "section", "container", "panel"]
ACTIVE_STATE_SELECTORS = [".active", ".selected", ".current", "[aria-current]", "[aria-selected='true']"]
GENERIC_VERIFICATION_FALLBACKS = [".page-content", ".main-content", "main", "#content", ".container"]

CREDENTIAL_FIELD_VOCABULARY = {
    "username": [
        "input[type='email']",
        "input[name*='email']",
        "input[name*='username']",
        "input[name*='user']",
        "input[placeholder*='email' i]",
        "input[placeholder*='username' i]",
        "#email",
        "#username",
        ".email-input",
        ".username-input",
        "[data-testid*='email']",
        "[data-testid*='username']",
    ],
    "password": [
        "input[type='password']",
        "input[name*='password']",
        "input[placeholder*='password' i]",
        "#password",
        ".password-input",
        "[data-testid*='password']",
    ],
    "submit": [
        "button[type='submit']",
        "input[type='submit']",
        "button:has-text('Sign in')",
        "button:has-text('Log in')",
        "button:has-text('Login')",
        ".login-btn",
        ".btn-login",
        ".submit-btn",
        "[data-testid*='login']",
        "[data-testid*='submit']",
        ".btn-primary",
    ],
}

GENERIC_INPUT_SELECTORS = ["input[type='text']", "input[type='search']", "textarea", ".input-field"]


def escape_text(value: str) -> str:
    """Make ``value`` safe inside a single-quoted selector string of a comma list."""
    value = re.sub(r"\s+", " ", value.replace(",", " ")).strip()
    return value.replace("\\", "\\\\").replace("'", "\\'")


def split_locators(target: str) -> List[str]:
    """Split a comma-separated candidate list, ignoring commas inside quotes or brackets."""
    candidates: List[str] = []
    current: List[str] = []
    quote = None
    depth = 0
    escaped = False

    for char in target or "":
        if escaped:
            current.append(char)
            escaped = False
            continue
        if char == "\\":
            current.append(char)
            escaped = True
            continue
        if quote:
            if char == quote:
                quote = None
        elif char in ("'", '"'):
            quote = char
        elif char in "([":
            depth += 1
        elif char in ")]":
            depth = max(depth - 1, 0)
        elif char == "," and depth == 0:
            candidates.append("".join(current).strip())
            current = []
            continue
        current.append(char)

    candidates.append("".join(current).strip())
    return [c for c in candidates if c]


def join_locators(locators: Iterable[str]) -> str:
    return ", ".join(locators)


class SelectorSynthesizer:
    """Deterministic, duplicate-free locator ranking.

    Tiers run in a fixed order; within a tier, candidates keep generation
    order. The first occurrence of a duplicate wins.
    """

    def __init__(self):
        self.tiers: List[Callable[[str, List[str], List[str]], List[str]]] = [
            self._exact_text,
            self._token_pairs,
            self._test_attributes,
            self._href,
            self._class_names,
            self._ids,
            self._nav_containers,
            self._compound_classes,
            self._accessibility,
            self._aria_roles,
        ]

    @staticmethod
    def tokenize(phrase: str) -> List[str]:
        return [t for t in TOKEN_SPLIT_PATTERN.split((phrase or "").lower()) if len(t) > 1]

    @staticmethod
    def phrase_forms(tokens: List[str]) -> List[str]:
        """Hyphenated, underscored and concatenated forms, without repeats."""
        if not tokens:
            return []
        return _dedup(["-".join(tokens), "_".join(tokens), "".join(tokens)])

    def synthesize(self, target_phrase: str) -> List[str]:
        phrase = escape_text(target_phrase or "")
        if not phrase:
            return []
        tokens = [escape_text(t) for t in self.tokenize(target_phrase)]
        forms = self.phrase_forms(tokens)

        locators: List[str] = []
        for tier in self.tiers:
            locators.extend(tier(phrase, tokens, forms))
        return _dedup(locators)

    def synthesize_verification(self, target_phrase: str) -> List[str]:
        """Broader variant for checking that navigation landed; never empty."""
        phrase = escape_text(target_phrase or "")
        locators: List[str] = []
        if phrase:
            tokens = [escape_text(t) for t in self.tokenize(target_phrase)]
            forms = self.phrase_forms(tokens)
            locators.extend(self.synthesize(target_phrase))
            locators.extend(self._content_containers(phrase, forms))
            locators.extend(f"{state}:has-text('{phrase}')" for state in ACTIVE_STATE_SELECTORS)
        locators.extend(GENERIC_VERIFICATION_FALLBACKS)
        return _dedup(locators)

    @staticmethod
    def synthesize_credential_field(field: str) -> List[str]:
        """Fixed candidates for ``username``, ``password`` or ``submit``."""
        return list(CREDENTIAL_FIELD_VOCABULARY.get(field, []))

    # Tiers, in ranking order.

    @staticmethod
    def _exact_text(phrase, tokens, forms):
        exact = [f"{tag}:text-is('{phrase}')" for tag in TEXT_TAGS]
        partial = [f"{tag}:has-text('{phrase}')" for tag in PARTIAL_TEXT_TAGS]
        return exact + partial

    @staticmethod
    def _token_pairs(phrase, tokens, forms):
        if len(tokens) < 2:
            return []
        return [
            f"{tag}:has-text('{first}'):has-text('{second}')"
            for first, second in itertools.combinations(tokens, 2)
            for tag in PARTIAL_TEXT_TAGS
        ]

    @staticmethod
    def _test_attributes(phrase, tokens, forms):
        locators = [f"[{attr}='{form}']" for attr in TEST_ATTRIBUTES for form in forms]
        locators += [f"[{attr}*='{token}']" for token in tokens for attr in TEST_ATTRIBUTES]
        return locators

    @staticmethod
    def _href(phrase, tokens, forms):
        return [f"a[href*='{form}']" for form in forms]

    @staticmethod
    def _class_names(phrase, tokens, forms):
        locators = [f".{form}" for form in forms if CSS_IDENT_PATTERN.match(form)]
        locators += [f"[class*='{form}']" for form in forms]
        locators += [f"[class*='{token}']" for token in tokens]
        return locators

    @staticmethod
    def _ids(phrase, tokens, forms):
        locators = [f"#{form}" for form in forms if CSS_IDENT_PATTERN.match(form)]
        locators += [f"[id*='{form}']" for form in forms]
        locators += [f"[id*='{token}']" for token in tokens]
        return locators

    @staticmethod
    def _nav_containers(phrase, tokens, forms):
        return [f"{container} {tag}:has-text('{phrase}')" for container in NAV_CONTAINERS for tag in ("a", "button")]

    @staticmethod
    def _compound_classes(phrase, tokens, forms):
        if not tokens:
            return []
        base = "-".join(tokens)
        if not CSS_IDENT_PATTERN.match(base):
            return []
        locators = [f".{base}-{suffix}" for suffix in COMPOUND_SUFFIXES]
        locators += [f".{prefix}-{base}" for prefix in COMPOUND_PREFIXES]
        return locators

    @staticmethod
    def _accessibility(phrase, tokens, forms):
        exact = [f"[{attr}='{phrase}']" for attr in ACCESSIBILITY_ATTRIBUTES]
        partial = [f"[{attr}*='{phrase}' i]" for attr in ACCESSIBILITY_ATTRIBUTES]
        return exact + partial

    @staticmethod
    def _aria_roles(phrase, tokens, forms):
        return [f"[role='{role}']:has-text('{phrase}')" for role in ARIA_ROLES]

    @staticmethod
    def _content_containers(phrase, forms):
        locators = [f"h1:has-text('{phrase}')", f"h2:has-text('{phrase}')", f".page-title:has-text('{phrase}')"]
        for form in forms[:1]:
            if CSS_IDENT_PATTERN.match(form):
                locators += [f".{form}-{suffix}" for suffix in CONTENT_SUFFIXES]
                locators.append(f"#{form}-section")
            locators.append(f"[class*='{form}'][class*='content']")
        locators.append(f"main:has-text('{phrase}')")
        return locators


def _dedup(items: Iterable[str]) -> List[str]:
    seen = set()
    result = []
    for item in items:
        if item not in seen:
            seen.add(item)
            result.append(item)
    return result

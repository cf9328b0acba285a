"""Heuristic extraction of test intent from a free-text user story.

Every rule here is a regular expression or keyword check. Rule order is kept
as data (``CLASSIFICATION_RULES`` and ``WORKFLOW_RULES``) so it can be tested
independently of the analyzer itself.
"""

import logging
import re
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from storyqa_agent.data import ActionType, ParsedStep, StoryAnalysis, WorkflowType

URL_PATTERN = re.compile(r"https?://[^\s]+")
URL_TRAILING_CHARS = ".,;)]}\"'"

USERNAME_PATTERN = re.compile(r"\b(?:with\s+)?(?:username|email|user)\s*:\s*([^\s,;]+)", re.IGNORECASE)
BARE_EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
PASSWORD_PATTERN = re.compile(r"\b(?:with\s+)?(?:password|pwd|pass)\s*:\s*([^\s,;]+)", re.IGNORECASE)

# A list marker is a number followed by a dot and whitespace, at the start of
# the text or after whitespace, so "Secret1." or "10.0.0.1" never count.
NUMBERED_MARKER_PATTERN = re.compile(r"(?:^|(?<=\s))(\d+)\.\s+")
CONNECTIVE_PATTERN = re.compile(r";|\b(?:and\s+then|then|after|next|finally|so\s+that)\b", re.IGNORECASE)
SEGMENT_STRIP_CHARS = " \t\r\n.,;:"

QUOTED_PATTERN = re.compile(r"[\"“”]([^\"“”]+)[\"“”]")
TARGET_PATTERNS = [
    re.compile(r"\bselect\s+([^,\.]+)", re.IGNORECASE),
    re.compile(r"\bclick\s+(?:on\s+)?([^,\.]+)", re.IGNORECASE),
    re.compile(r"\bchoose\s+([^,\.]+)", re.IGNORECASE),
    re.compile(r"\baccess\s+([^,\.]+)", re.IGNORECASE),
    re.compile(r"\bopen\s+([^,\.]+)", re.IGNORECASE),
    re.compile(r"\b(?:navigate|go)\s+to\s+([^,\.]+)", re.IGNORECASE),
    re.compile(r"\b(?:verify|check|confirm)\s+(?:that\s+)?([^,\.]+)", re.IGNORECASE),
]
TARGET_LEADING_WORDS = re.compile(r"^(?:the|a|an|on|into|to)\s+", re.IGNORECASE)
TARGET_TRAILING_CLAUSE = re.compile(
    r"\s+(?:is|are|was|were|appears?|shows?|displays?|loads?|should|becomes?)\b.*$", re.IGNORECASE
)

INPUT_WITH_PATTERN = re.compile(r"\bwith\s+([^,\.]+)", re.IGNORECASE)
INPUT_KEYED_PATTERN = re.compile(r"\b([a-zA-Z_][a-zA-Z_ ]{0,30}?)\s*:\s*(?!//)(\"[^\"]+\"|[^,;\s]+)")
INPUT_KEY_VERB = re.compile(r"^(?:enter|type|input|fill(?:\s+in)?)\s+(?:the\s+)?", re.IGNORECASE)


def _keywords(*words: str) -> Callable[[str], bool]:
    """Match any keyword at a word start, so "click" also covers "clicks"."""
    pattern = re.compile(r"\b(?:" + "|".join(re.escape(w) for w in words) + r")", re.IGNORECASE)
    return lambda text: pattern.search(text) is not None


def _all_of(*words: str) -> Callable[[str], bool]:
    checks = [_keywords(w) for w in words]
    return lambda text: all(check(text) for check in checks)


ClassificationRule = Tuple[Callable[[str], bool], ActionType]

# First matching rule wins.
CLASSIFICATION_RULES: List[ClassificationRule] = [
    (_keywords("login", "log in", "sign in", "signin", "authenticate"), ActionType.AUTHENTICATION),
    (_all_of("username", "password"), ActionType.AUTHENTICATION),
    (_keywords("select", "click", "choose", "open"), ActionType.NAVIGATION),
    (_keywords("navigate", "go to", "access"), ActionType.NAVIGATE),
    (_keywords("enter", "type", "input", "fill"), ActionType.DATA_ENTRY),
    (_keywords("verify", "check", "confirm"), ActionType.VERIFICATION),
]

WorkflowRule = Tuple[Callable[[str, Sequence[ActionType]], bool], WorkflowType]


def _has_auth(types: Sequence[ActionType]) -> bool:
    return ActionType.AUTHENTICATION in types


def _has_navigation(types: Sequence[ActionType]) -> bool:
    return ActionType.NAVIGATION in types or ActionType.NAVIGATE in types


_mentions_admin = _keywords("admin")
_mentions_users = _keywords("user management", "users", "user card", "user list")

WORKFLOW_RULES: List[WorkflowRule] = [
    (lambda text, types: _has_auth(types) and _mentions_admin(text) and _mentions_users(text),
     WorkflowType.ADMIN_USER_MANAGEMENT),
    (lambda text, types: _has_auth(types) and _has_navigation(types), WorkflowType.LOGIN_AND_NAVIGATE),
    (lambda text, types: _has_auth(types), WorkflowType.AUTHENTICATION_ONLY),
]


class StoryAnalyzer:
    """Turns story text into URLs, credentials, parsed steps and a workflow label.

    Analysis never raises: a missing signal simply produces an empty value.
    """

    def __init__(
        self,
        classification_rules: Optional[List[ClassificationRule]] = None,
        workflow_rules: Optional[List[WorkflowRule]] = None,
    ):
        self.classification_rules = classification_rules or CLASSIFICATION_RULES
        self.workflow_rules = workflow_rules or WORKFLOW_RULES

    def analyze(self, text: str) -> StoryAnalysis:
        text = text or ""
        segments = self.split_into_steps(text)
        parsed_steps = [self.parse_step(i + 1, segment) for i, segment in enumerate(segments)]
        analysis = StoryAnalysis(
            original_story=text,
            urls=self.extract_urls(text),
            credentials=self.extract_credentials(text),
            parsed_steps=parsed_steps,
        )
        analysis.workflow_type = self.classify_workflow(text, [s.action_type for s in parsed_steps])

        logging.debug(
            f"Story analyzed: {len(analysis.urls)} url(s), credentials={sorted(analysis.credentials)}, "
            f"steps={[s.action_type.value for s in parsed_steps]}, workflow={analysis.workflow_type.value}"
        )
        return analysis

    @staticmethod
    def extract_urls(text: str) -> List[str]:
        urls: List[str] = []
        for match in URL_PATTERN.finditer(text or ""):
            url = match.group(0).rstrip(URL_TRAILING_CHARS)
            if url and url not in urls:
                urls.append(url)
        return urls

    @staticmethod
    def extract_credentials(text: str) -> Dict[str, str]:
        """Only the first username and the first password are kept."""
        credentials: Dict[str, str] = {}
        text = text or ""

        username_match = USERNAME_PATTERN.search(text)
        if username_match:
            credentials["username"] = username_match.group(1).rstrip(".")
        else:
            email_match = BARE_EMAIL_PATTERN.search(text)
            if email_match:
                credentials["username"] = email_match.group(0)

        password_match = PASSWORD_PATTERN.search(text)
        if password_match:
            credentials["password"] = password_match.group(1).rstrip(".")

        return credentials

    @staticmethod
    def split_into_steps(text: str) -> List[str]:
        """Split on an explicit numbered list when there is one, else on connectives."""
        text = (text or "").strip()
        if not text:
            return []

        markers = list(NUMBERED_MARKER_PATTERN.finditer(text))
        if len(markers) > 1:
            segments = []
            for i, marker in enumerate(markers):
                end = markers[i + 1].start() if i + 1 < len(markers) else len(text)
                segments.append(text[marker.end():end])
        else:
            segments = StoryAnalyzer._split_on_connectives(text)

        cleaned = [segment.strip(SEGMENT_STRIP_CHARS) for segment in segments]
        return [segment for segment in cleaned if segment]

    @staticmethod
    def _split_on_connectives(text: str) -> List[str]:
        # Connectives inside a URL ("/next/page") are part of the URL
        url_spans = [m.span() for m in URL_PATTERN.finditer(text)]
        segments, start = [], 0
        for match in CONNECTIVE_PATTERN.finditer(text):
            if any(s <= match.start() < e for s, e in url_spans):
                continue
            segments.append(text[start:match.start()])
            start = match.end()
        segments.append(text[start:])
        return segments

    def classify(self, segment: str) -> ActionType:
        for predicate, action_type in self.classification_rules:
            if predicate(segment):
                return action_type
        return ActionType.GENERAL

    def classify_workflow(self, text: str, action_types: Sequence[ActionType]) -> WorkflowType:
        for predicate, workflow_type in self.workflow_rules:
            if predicate(text, action_types):
                return workflow_type
        return WorkflowType.GENERAL_WORKFLOW

    def parse_step(self, step_number: int, segment: str) -> ParsedStep:
        action_type = self.classify(segment)
        parsed = ParsedStep(step_number=step_number, text=segment, action_type=action_type)

        if action_type == ActionType.AUTHENTICATION:
            parsed.data = self.extract_credentials(segment)
        elif action_type == ActionType.DATA_ENTRY:
            parsed.data = self.extract_input_values(segment)
        elif action_type in (ActionType.NAVIGATION, ActionType.NAVIGATE, ActionType.VERIFICATION):
            parsed.target = self.extract_target(segment)
        return parsed

    @staticmethod
    def extract_target(segment: str) -> str:
        quoted = QUOTED_PATTERN.search(segment)
        if quoted:
            return quoted.group(1).strip()

        for pattern in TARGET_PATTERNS:
            match = pattern.search(segment)
            if match:
                target = TARGET_TRAILING_CLAUSE.sub("", match.group(1).strip())
                target = TARGET_LEADING_WORDS.sub("", target)
                return target.strip()
        return ""

    @staticmethod
    def extract_input_values(segment: str) -> Dict[str, str]:
        """Key/value data of a data-entry segment, first pair first."""
        values: Dict[str, str] = {}

        with_match = INPUT_WITH_PATTERN.search(segment)
        if with_match:
            values["value"] = with_match.group(1).strip().strip('"')

        for key, value in INPUT_KEYED_PATTERN.findall(segment):
            key = INPUT_KEY_VERB.sub("", key.strip()).lower()
            values.setdefault(key, value.strip('"'))

        if not values:
            quoted = QUOTED_PATTERN.search(segment)
            if quoted:
                values["value"] = quoted.group(1)
        return values

import hashlib
import logging
import os
import re
from typing import Dict, List, Optional

from storyqa_agent.analysis import StoryAnalyzer
from storyqa_agent.data import ActionType, DocumentMetadata, DocumentValidationResult, UserStoryDocument

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")
WHITESPACE_PATTERN = re.compile(r"\s+")
MAX_COMPLEXITY = 10

MIN_CONTENT_LENGTH = 50
LONG_CONTENT_LENGTH = 10000
MAX_CONTENT_LENGTH = 50000

FORMATS_BY_EXTENSION = {
    ".md": "markdown",
    ".markdown": "markdown",
    ".txt": "text",
    ".feature": "gherkin",
}


def normalize_content(content: str) -> str:
    return WHITESPACE_PATTERN.sub(" ", content.strip().lower())


def content_hash(content: str) -> str:
    return hashlib.sha256(normalize_content(content).encode("utf-8")).hexdigest()


class DocumentManager:
    """In-memory store of user story documents, deduplicated by content."""

    def __init__(self, analyzer: Optional[StoryAnalyzer] = None):
        self.analyzer = analyzer or StoryAnalyzer()
        self._documents: Dict[str, UserStoryDocument] = {}

    def _find_by_hash(self, digest: str) -> Optional[UserStoryDocument]:
        return next((d for d in self._documents.values() if d.content_hash == digest), None)

    def extract_metadata(self, content: str) -> DocumentMetadata:
        analysis = self.analyzer.analyze(content)
        actions = []
        for step in analysis.parsed_steps:
            if step.action_type != ActionType.GENERAL and step.action_type.value not in actions:
                actions.append(step.action_type.value)
        return DocumentMetadata(
            urls=analysis.urls,
            email_addresses=list(dict.fromkeys(EMAIL_PATTERN.findall(content))),
            actions=actions,
            complexity_score=min(max(len(analysis.parsed_steps), 1), MAX_COMPLEXITY),
        )

    def _store(self, document: UserStoryDocument) -> UserStoryDocument:
        existing = self._find_by_hash(document.content_hash)
        if existing is not None:
            logging.info(f"Document content already stored as {existing.id}, reusing it")
            return existing
        document.metadata = self.extract_metadata(document.content)
        self._documents[document.id] = document
        logging.info(f"Stored document {document.id} ({document.file_name or document.source})")
        return document

    def create_user_story_from_text(self, text: str, project_context: str = "") -> UserStoryDocument:
        if not text or not text.strip():
            raise ValueError("User story text cannot be empty")
        return self._store(UserStoryDocument(
            file_name="manual_entry.txt",
            content=text,
            project_context=project_context,
            content_hash=content_hash(text),
        ))

    def upload_user_story(self, file_path: str, project_context: str = "") -> UserStoryDocument:
        if not os.path.isfile(file_path):
            raise FileNotFoundError(f"User story file not found: {file_path}")
        with open(file_path, "r", encoding="utf-8") as f:
            content = f.read()

        extension = os.path.splitext(file_path)[1].lower()
        return self._store(UserStoryDocument(
            file_name=os.path.basename(file_path),
            file_path=os.path.abspath(file_path),
            content=content,
            source="file_upload",
            file_format=FORMATS_BY_EXTENSION.get(extension, "text"),
            project_context=project_context,
            content_hash=content_hash(content),
        ))

    def get_document(self, document_id: str) -> Optional[UserStoryDocument]:
        return self._documents.get(document_id)

    def list_documents(self) -> List[UserStoryDocument]:
        return sorted(self._documents.values(), key=lambda d: d.uploaded_at, reverse=True)

    def delete_document(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None

    def search_user_stories(self, query: str, project_id: str = "") -> List[UserStoryDocument]:
        """Case-insensitive search over content, file name, project context and URLs, newest first.

        ``project_id`` restricts results to documents whose project context mentions it.
        An empty query lists every document of the project.
        """
        needle = (query or "").strip().lower()
        project = project_id.lower()

        matches = []
        for document in self.list_documents():
            if project and project not in document.project_context.lower():
                continue
            fields = [document.content, document.file_name, document.project_context, *document.metadata.urls]
            if needle and not any(needle in field.lower() for field in fields):
                continue
            matches.append(document)

        logging.info(f"Found {len(matches)} document(s) matching '{query}'")
        return matches

    def validate_user_story(self, document: UserStoryDocument) -> DocumentValidationResult:
        result = DocumentValidationResult()
        content = document.content or ""
        metadata = self.extract_metadata(content) if content.strip() else DocumentMetadata()

        if not document.file_name.strip():
            result.issues.append("File name is required")
        if not content.strip():
            result.issues.append("Content is required")
        if len(content) > MAX_CONTENT_LENGTH:
            result.issues.append("Content exceeds maximum allowed size")
        score = 100 - 10 * len(result.issues)

        if len(content.strip()) < MIN_CONTENT_LENGTH:
            score -= 20
            result.issues.append("User story content is too short for effective test generation")
        if len(content) > LONG_CONTENT_LENGTH:
            score -= 10
            result.warnings.append("User story content is very long and may be complex to process")

        if not document.project_context.strip():
            score -= 15
            result.warnings.append("Project context should be provided for better test generation")
            result.suggestions.append("Add project context for better test scenario generation")
        if not metadata.urls and not metadata.actions:
            score -= 10
        if not metadata.urls:
            result.suggestions.append("Consider including specific URLs or endpoints for better test targeting")
        if not metadata.actions:
            result.suggestions.append("Include specific actions (login, navigate, click, etc.) for clearer test steps")

        result.is_valid = not result.issues
        result.quality_score = max(0, min(100, score))
        logging.debug(f"Validated document {document.id}: score={result.quality_score}, valid={result.is_valid}")
        return result

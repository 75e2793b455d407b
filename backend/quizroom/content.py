"""Content sets: JSON question files on disk.

A content file ``<content_dir>/<content_id>.json`` looks like::

    {
        "title": "General knowledge",
        "round_duration_seconds": 20,
        "questions": [{"prompt": "...", "answer": 42}]
    }
"""
import json
import logging
import math
import os
import re
import threading
from typing import Dict, List, Optional

from quizroom.exceptions import InvalidContent, LoadError
from quizroom.models import ContentSet, Question

CONTENT_ID_PATTERN = re.compile(r'^[A-Za-z0-9_-]+$')


def _numeric(value) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def parse_content(content_id: str, data) -> ContentSet:
    if not isinstance(data, dict):
        raise LoadError(f'Content set {content_id} must be a JSON object')
    duration = data.get('round_duration_seconds')
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise LoadError(f'Content set {content_id} needs a positive integer round_duration_seconds')
    raw_questions = data.get('questions')
    if not isinstance(raw_questions, list):
        raise LoadError(f'Content set {content_id} needs a questions list')
    questions = []
    for idx, item in enumerate(raw_questions):
        if not isinstance(item, dict):
            raise LoadError(f'Question {idx} in {content_id} must be an object')
        prompt = item.get('prompt')
        answer = _numeric(item.get('answer'))
        if not isinstance(prompt, str) or not prompt.strip():
            raise LoadError(f'Question {idx} in {content_id} has no prompt')
        if answer is None:
            raise LoadError(f'Question {idx} in {content_id} needs a numeric answer')
        questions.append(Question(prompt=prompt.strip(), correct_answer=answer))
    return ContentSet(
        content_id=content_id,
        title=str(data.get('title') or content_id),
        questions=tuple(questions),
        round_duration_seconds=duration,
    )


def load_content(path: str, content_id: str) -> ContentSet:
    """Read and validate one content file, raising LoadError on any failure."""
    try:
        with open(path, encoding='utf-8') as fh:
            data = json.load(fh)
    except (OSError, ValueError) as exc:
        raise LoadError(f'Could not read content set {content_id}: {exc}') from exc
    return parse_content(content_id, data)


class ContentCatalog:
    """Caches content sets by id; loads from ``content_dir`` on first use."""

    def __init__(self, content_dir: Optional[str] = None, preloaded: Optional[Dict[str, ContentSet]] = None,
                 logger=None):
        self.content_dir = content_dir
        self._logger = logger or logging.getLogger(__name__)
        self._cache: Dict[str, ContentSet] = dict(preloaded or {})
        self._lock = threading.Lock()

    def _path_for(self, content_id: str) -> Optional[str]:
        if not self.content_dir:
            return None
        return os.path.join(self.content_dir, f'{content_id}.json')

    def available(self) -> List[str]:
        ids = set(self._cache)
        if self.content_dir and os.path.isdir(self.content_dir):
            for filename in os.listdir(self.content_dir):
                stem, ext = os.path.splitext(filename)
                if ext == '.json' and CONTENT_ID_PATTERN.match(stem):
                    ids.add(stem)
        return sorted(ids)

    def get(self, content_id) -> ContentSet:
        if not isinstance(content_id, str) or not CONTENT_ID_PATTERN.match(content_id):
            raise InvalidContent(content_id)
        with self._lock:
            cached = self._cache.get(content_id)
            if cached is not None:
                return cached
            path = self._path_for(content_id)
            if path is None or not os.path.isfile(path):
                raise InvalidContent(content_id)
            content = load_content(path, content_id)
            self._cache[content_id] = content
        self._logger.info(f"[content-load] id={content_id} questions={len(content.questions)}")
        return content

"""Language detection and keyword lookup tables.

The size keywords form a tagged lookup table, size -> language ->
keywords. Keyword sets overlap across sizes on purpose; callers that
need one answer take the largest matched size.
"""

import re
from functools import lru_cache

from stepwise.decomposition.models import ComplexitySize, Language

_HANGUL_RE = re.compile(r"[\u1100-\u11ff\u3130-\u318f\uac00-\ud7a3]")


SIZE_KEYWORDS: dict[ComplexitySize, dict[Language, tuple[str, ...]]] = {
    ComplexitySize.S: {
        Language.ENGLISH: (
            "email",
            "call",
            "text ",
            "reply",
            "respond",
            "pay",
            "buy",
            "send",
            "book a",
            "sign",
            "water the",
            "take out",
            "remind",
            "order ",
        ),
        Language.KOREAN: (
            "이메일",
            "메일",
            "전화",
            "문자",
            "답장",
            "송금",
            "결제",
            "예약",
            "주문",
            "버리기",
        ),
    },
    ComplexitySize.M: {
        Language.ENGLISH: (
            "clean",
            "laundry",
            "cook",
            "dishes",
            "groceries",
            "grocery",
            "workout",
            "exercise",
            "meeting",
            "fill out",
            "form",
            "pack",
            "errand",
            "homework",
            "read",
            "fix",
        ),
        Language.KOREAN: (
            "청소",
            "빨래",
            "요리",
            "설거지",
            "장보기",
            "운동",
            "회의",
            "숙제",
            "읽기",
            "정리",
        ),
    },
    ComplexitySize.L: {
        Language.ENGLISH: (
            "report",
            "essay",
            "research",
            "presentation",
            "study",
            "prepare",
            "taxes",
            "resume",
            "cover letter",
            "plan",
            "deep clean",
            "exam",
            "proposal",
            "review",
        ),
        Language.KOREAN: (
            "보고서",
            "과제",
            "발표",
            "조사",
            "공부",
            "복습",
            "시험",
            "이력서",
            "에세이",
            "기획서",
            "자기소개서",
        ),
    },
    ComplexitySize.XL: {
        Language.ENGLISH: (
            "build",
            "website",
            "mobile app",
            "web app",
            "launch",
            "thesis",
            "dissertation",
            "renovat",
            "move house",
            "moving",
            "migrate",
            "novel",
            "business plan",
            "startup",
            "wedding",
            "portfolio",
            "side project",
        ),
        Language.KOREAN: (
            "개발",
            "웹사이트",
            "홈페이지",
            "앱",
            "이사",
            "논문",
            "프로젝트",
            "창업",
            "포트폴리오",
            "결혼",
        ),
    },
}


STUDY_KEYWORDS: dict[Language, tuple[str, ...]] = {
    Language.ENGLISH: (
        "study",
        "studying",
        "exam",
        "learn",
        "homework",
        "chapter",
        "lecture",
        "quiz",
        "memoriz",
        "textbook",
        "flashcard",
        "lesson",
        "syllabus",
        "revise for",
        "review for",
        "review notes",
    ),
    Language.KOREAN: (
        "공부",
        "복습",
        "예습",
        "시험",
        "암기",
        "강의",
        "단원",
        "문제집",
        "수업",
        "교재",
        "학습",
    ),
}


def detect_language(text: str) -> Language:
    """Korean when any Hangul code point is present, English otherwise."""
    if _HANGUL_RE.search(text):
        return Language.KOREAN
    return Language.ENGLISH


@lru_cache(maxsize=512)
def _keyword_pattern(keyword: str) -> re.Pattern[str]:
    # Latin keywords must start a word; they may be word prefixes ("renovat").
    return re.compile(r"(?<![a-z0-9])" + re.escape(keyword))


def contains_keyword(text: str, keyword: str) -> bool:
    """Whether ``keyword`` occurs in lower-cased ``text``.

    Hangul keywords match as plain substrings (particles attach directly
    to nouns); Latin keywords must begin at a word boundary.
    """
    if _HANGUL_RE.search(keyword):
        return keyword in text
    return _keyword_pattern(keyword).search(text) is not None


def matched_sizes(text: str, language: Language | None = None) -> list[ComplexitySize]:
    """All sizes with at least one keyword in ``text``, smallest first."""
    lowered = text.lower()
    language = language or detect_language(lowered)
    return [
        size
        for size, by_language in SIZE_KEYWORDS.items()
        if any(contains_keyword(lowered, kw) for kw in by_language[language])
    ]


def rule_size(text: str, language: Language | None = None) -> ComplexitySize | None:
    """Largest keyword-matched size, or None when nothing matched."""
    sizes = matched_sizes(text, language)
    if not sizes:
        return None
    return ComplexitySize.largest(*sizes)


def is_learning_task(title: str, description: str | None = None) -> bool:
    """Whether the task reads like studying, in either language."""
    text = f"{title} {description or ''}".lower()
    return any(
        contains_keyword(text, kw)
        for keywords in STUDY_KEYWORDS.values()
        for kw in keywords
    )

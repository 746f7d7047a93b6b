# backend/services/question_pool.py
"""
Question-Pool Builder

Derives categorized interview-question pools from a structured resume and
condenses them into the short strategy menu embedded in the voice agent's
system prompt.

Pools:
- one per project (by title)
- one per skill that looks technical
- one per experience entry ("role at company")
- a behavioral pool and a problem-solving/system-design pool, always

Ordering is random per interview so the agent doesn't always open with the
same project: pools are shuffled, then every pool of a randomly chosen
starting category moves to the front (stable partition). Pass a seeded
``random.Random`` to make it reproducible.
"""

import logging
import random
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from prompts.interview_prompts import PromptTemplates

logger = logging.getLogger(__name__)


TECHNICAL_SKILL_RE = re.compile(
    r"(?<![A-Za-z])("
    r"python|java|javascript|typescript|c\+\+|c#|golang|go|rust|kotlin|swift|ruby|php|scala|"
    r"react|angular|vue|next\.?js|node(?:\.?js)?|express|django|flask|fastapi|spring|"
    r"html|css|tailwind|sql|mysql|postgres(?:ql)?|mongodb|redis|graphql|rest|api|"
    r"aws|azure|gcp|cloud|docker|kubernetes|terraform|linux|git|ci/cd|devops|"
    r"machine learning|deep learning|ml|ai|nlp|tensorflow|pytorch|pandas|numpy|"
    r"data structures|algorithms|dsa|microservices|system design"
    r")(?![A-Za-z])",
    re.IGNORECASE,
)

CATEGORY_LABELS = {
    "project": "PROJECT",
    "skill": "SKILL",
    "experience": "EXPERIENCE",
    "behavioral": "BEHAVIORAL",
    "problem-solving": "PROBLEM-SOLVING",
}

STRATEGY_LENGTH = 5


@dataclass
class QuestionPool:
    category: str
    topic: str
    difficulty: str
    questions: List[str] = field(default_factory=list)

    @property
    def label(self) -> str:
        return CATEGORY_LABELS[self.category]


class QuestionPoolBuilder:
    """
    Builds and orders question pools for one interview.

    Attributes:
        rng: Random source for shuffling (module-level random when not given)
    """

    START_CATEGORIES = ["project", "skill", "behavioral", "experience"]

    PROJECT_TEMPLATES = [
        "Walk me through {title}. What problem did it solve and what exactly was your part?",
        "What was the hardest technical challenge in {title}, and how did you solve it?",
        "Why did you choose {tech} for {title}? What alternatives did you consider?",
        "If you rebuilt {title} today, what would you change and why?",
        "How did you test {title} and how did you know it was working?",
    ]

    SKILL_TEMPLATES = [
        "How have you used {skill} in a real project? Be specific.",
        "What are the limitations of {skill}, and how have you worked around them?",
        "Explain a core concept of {skill} as if to a junior teammate.",
        "Describe a bug you hit while working with {skill} and how you debugged it.",
    ]

    EXPERIENCE_TEMPLATES = [
        "What were your main responsibilities as {role} at {company}?",
        "Describe the achievement at {company} you're most proud of, with measurable results.",
        "Tell me about a disagreement with a teammate at {company}. How was it resolved?",
        "What did you learn as {role} that you still apply today?",
    ]

    BEHAVIORAL_QUESTIONS = [
        "Tell me about a time you missed a deadline. What happened and what did you change?",
        "Describe a situation where you had to learn something new very quickly.",
        "Tell me about a time you received critical feedback. How did you respond?",
        "Describe a conflict within a team and the role you played in resolving it.",
        "Tell me about a decision you made with incomplete information.",
    ]

    PROBLEM_SOLVING_QUESTIONS = [
        "How would you design a URL shortener that handles millions of requests per day?",
        "How would you find the first non-repeating character in a stream of characters?",
        "Design a rate limiter for a public API. What trade-offs would you make?",
        "How would you detect a cycle in a linked list, and what is the complexity?",
        "A service you own is suddenly slow in production. How do you investigate?",
    ]

    def __init__(self, rng: Optional[random.Random] = None):
        self.rng = rng or random.Random()

    # ---------- Pool construction ----------

    def build_pools(self, profile: Optional[Dict[str, Any]]) -> List[QuestionPool]:
        profile = profile or {}
        pools: List[QuestionPool] = []

        for project in profile.get("projects") or []:
            pool = self._project_pool(project)
            if pool:
                pools.append(pool)

        for skill in profile.get("skills") or []:
            skill = str(skill).strip()
            if skill and TECHNICAL_SKILL_RE.search(skill):
                pools.append(self._pool(
                    "skill", skill, "medium",
                    [t.format(skill=skill) for t in self.SKILL_TEMPLATES],
                ))

        for entry in profile.get("experience") or []:
            pool = self._experience_pool(entry)
            if pool:
                pools.append(pool)

        pools.append(self._pool(
            "behavioral", "Teamwork & Ownership", "medium", list(self.BEHAVIORAL_QUESTIONS),
        ))
        pools.append(self._pool(
            "problem-solving", "System Design & Problem Solving", "hard", list(self.PROBLEM_SOLVING_QUESTIONS),
        ))
        return pools

    def _pool(self, category: str, topic: str, difficulty: str, questions: List[str]) -> QuestionPool:
        self.rng.shuffle(questions)
        return QuestionPool(category=category, topic=topic, difficulty=difficulty, questions=questions)

    def _project_pool(self, project: Any) -> Optional[QuestionPool]:
        if not isinstance(project, dict):
            return None
        title = str(project.get("title") or project.get("name") or "").strip()
        if not title:
            return None
        technologies = [str(t) for t in project.get("technologies") or [] if t]
        tech = technologies[0] if technologies else "that stack"
        return self._pool(
            "project", title, "medium",
            [t.format(title=title, tech=tech) for t in self.PROJECT_TEMPLATES],
        )

    def _experience_pool(self, entry: Any) -> Optional[QuestionPool]:
        if not isinstance(entry, dict):
            return None
        role = str(entry.get("role") or "").strip()
        company = str(entry.get("company") or "").strip()
        if not role and not company:
            return None
        topic = f"{role} at {company}" if role and company else (role or company)
        return self._pool(
            "experience", topic, "easy",
            [t.format(role=role or "a team member", company=company or "that company")
             for t in self.EXPERIENCE_TEMPLATES],
        )

    # ---------- Ordering & strategy ----------

    def order_pools(self, pools: List[QuestionPool]) -> List[QuestionPool]:
        """Shuffle, then move every pool of a random starting category to the front."""
        ordered = list(pools)
        self.rng.shuffle(ordered)
        start = self.rng.choice(self.START_CATEGORIES)
        front = [p for p in ordered if p.category == start]
        rest = [p for p in ordered if p.category != start]
        logger.info("Question pools: %d total, opening with %s", len(ordered), start)
        return front + rest

    def build_strategy(self, profile: Optional[Dict[str, Any]]) -> str:
        """
        The condensed menu sent to the live agent: exactly five lines of
        ``<n>. <CATEGORY>: "<topic>" - Sample: "<question>"``. Fewer than five
        pools are cycled, taking the next sample question on each pass.
        """
        ordered = self.order_pools(self.build_pools(profile))

        lines = []
        for index in range(STRATEGY_LENGTH):
            pool = ordered[index % len(ordered)]
            pass_number = index // len(ordered)
            question = pool.questions[pass_number % len(pool.questions)]
            lines.append(
                f'{index + 1}. {pool.label}: "{_quote_safe(pool.topic)}" - Sample: "{_quote_safe(question)}"'
            )
        return "\n".join(lines)

    def build_system_prompt(
        self,
        profile: Optional[Dict[str, Any]],
        mode: str,
        duration: str,
        base_prompt: Optional[str] = None,
        strategy: Optional[str] = None,
    ) -> str:
        profile = profile or {}
        strategy = strategy or self.build_strategy(profile)
        return PromptTemplates.interviewer_system_prompt(
            base_prompt=base_prompt or PromptTemplates.DEFAULT_SYSTEM_PROMPT,
            mode=mode,
            duration_minutes=duration,
            resume_context=PromptTemplates.resume_context(profile),
            strategy=strategy,
            candidate_name=profile.get("name") or None,
        )


def _quote_safe(text: str) -> str:
    return " ".join(str(text).replace('"', "'").split())

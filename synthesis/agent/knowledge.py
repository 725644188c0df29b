import json
import logging
from pathlib import Path

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class KnowledgeExample(BaseModel):
    name: str
    class_name: str | None = None
    level: int | None = None
    category: str | None = None
    text: str


class KnowledgeBase(BaseModel):
    """Rules reference material the stage prompts can draw on. Empty by default."""

    class_guides: dict[str, str] = Field(default_factory=dict)
    format_guidance: str = ""
    mechanics_reference: str = ""
    examples: list[KnowledgeExample] = Field(default_factory=list)

    @classmethod
    def from_file(cls, path: str | Path) -> "KnowledgeBase":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        knowledge = cls.model_validate(data)
        logger.info(
            "Loaded knowledge base from %s (%s class guides, %s examples).",
            path,
            len(knowledge.class_guides),
            len(knowledge.examples),
        )
        return knowledge

    def class_guide(self, class_name: str | None) -> str | None:
        if not class_name:
            return None
        wanted = class_name.strip().lower()
        for name, guide in self.class_guides.items():
            if name.strip().lower() == wanted:
                return guide
        return None

    def find_examples(
        self,
        *,
        class_name: str | None = None,
        level: int | None = None,
        category: str | None = None,
        limit: int = 3,
    ) -> list[KnowledgeExample]:
        """Examples ranked by how many of the given attributes they share."""

        def score(example: KnowledgeExample) -> int:
            points = 0
            if class_name and (example.class_name or "").lower() == class_name.lower():
                points += 2
            if category and example.category == category:
                points += 1
            if level is not None and example.level is not None and abs(example.level - level) <= 2:
                points += 1
            return points

        ranked = sorted(self.examples, key=score, reverse=True)
        return [example for example in ranked if score(example) > 0][:limit]

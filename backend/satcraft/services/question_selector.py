"""
Question Selector: picks (topic, subtopic, difficulty) for the next slot of
a practice test.

Selection is deterministic so a session can be replayed:

  * topics rotate round-robin through the section's four domains; subtopics
    rotate within a domain each time the rotation wraps
  * module 1 ramps easy -> medium -> hard by position in the module
  * module 2 uses a difficulty mix chosen once from module-1 accuracy:
      accuracy > 0.7  -> "harder"
      accuracy < 0.5  -> "easier"
      otherwise       -> "standard"
    and is still ordered easiest to hardest within the module
"""
from __future__ import annotations

from typing import Optional

from satcraft.models.session import QuestionSelection
from satcraft.services.taxonomy import subtopics_for, topics_for_section

HARDER_ABOVE = 0.7
EASIER_BELOW = 0.5

# difficulty per third of a module
MODULE_1_RAMP = ("easy", "medium", "hard")
MODULE_2_MIXES: dict[str, tuple[str, str, str]] = {
    "harder": ("medium", "hard", "hard"),
    "standard": ("easy", "medium", "hard"),
    "easier": ("easy", "easy", "medium"),
}


def choose_mix(accuracy: Optional[float]) -> str:
    if accuracy is None:
        return "standard"
    if accuracy > HARDER_ABOVE:
        return "harder"
    if accuracy < EASIER_BELOW:
        return "easier"
    return "standard"


class QuestionSelector:
    def difficulty(self, module: int, position: int, module_size: int, mix: str = "standard") -> str:
        ramp = MODULE_1_RAMP if module == 1 else MODULE_2_MIXES.get(mix, MODULE_2_MIXES["standard"])
        third = min(2, (position * 3) // max(1, module_size))
        return ramp[third]

    def select(
        self,
        section: str,
        module: int,
        position: int,
        module_size: int,
        section_index: int,
        question_number: int,
        mix: str = "standard",
    ) -> QuestionSelection:
        """Build the selection for one slot.

        ``position`` is the 0-based slot within the module, ``section_index``
        the 0-based slot within the whole section (drives topic rotation).
        """
        topics = topics_for_section(section)
        topic = topics[section_index % len(topics)]
        subtopics = subtopics_for(topic)
        subtopic = subtopics[(section_index // len(topics)) % len(subtopics)] if subtopics else None
        return QuestionSelection(
            section=section,
            topic=topic,
            subtopic=subtopic,
            difficulty=self.difficulty(module, position, module_size, mix),
            question_number=question_number,
            module=module,
        )

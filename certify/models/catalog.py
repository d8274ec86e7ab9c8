from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID, uuid4

from certify.models.entity import EntityKind

QUIZ_LESSON_TYPES = frozenset({"quiz", "quick"})


@dataclass(frozen=True, slots=True)
class CatalogLesson:
    id: UUID
    section_id: UUID
    position: int
    title: str
    lesson_type: str  # video|notes|quiz|mixed

    @property
    def is_quiz(self) -> bool:
        return self.lesson_type in QUIZ_LESSON_TYPES


@dataclass(frozen=True, slots=True)
class CatalogSection:
    id: UUID
    position: int
    title: str
    lessons: tuple[CatalogLesson, ...] = ()


@dataclass(frozen=True, slots=True)
class LessonCatalog:
    """Active, ordered structure of one course or event.

    For events each section is itself the unit of progress, so the event
    adapter emits one "mixed" lesson per section whose id is the section id.
    """

    kind: EntityKind
    item_id: UUID
    sections: tuple[CatalogSection, ...] = ()

    @property
    def lessons(self) -> tuple[CatalogLesson, ...]:
        ordered = sorted(self.sections, key=lambda s: s.position)
        return tuple(
            lesson
            for section in ordered
            for lesson in sorted(section.lessons, key=lambda x: x.position)
        )

    @property
    def lesson_ids(self) -> frozenset[UUID]:
        return frozenset(lesson.id for lesson in self.lessons)

    @property
    def quiz_lessons(self) -> tuple[CatalogLesson, ...]:
        return tuple(lesson for lesson in self.lessons if lesson.is_quiz)

    def __len__(self) -> int:
        return len(self.lessons)

    @staticmethod
    def for_event(
        *, event_id: UUID, sections: list[tuple[UUID, int, str]]
    ) -> LessonCatalog:
        """Build an event catalog from ``(section_id, position, title)``."""
        return LessonCatalog(
            kind="event",
            item_id=event_id,
            sections=tuple(
                CatalogSection(
                    id=section_id,
                    position=position,
                    title=title,
                    lessons=(
                        CatalogLesson(
                            id=section_id,
                            section_id=section_id,
                            position=0,
                            title=title,
                            lesson_type="mixed",
                        ),
                    ),
                )
                for section_id, position, title in sections
            ),
        )


@dataclass(frozen=True, slots=True)
class ItemDetails:
    """Catalog metadata copied into a certificate at issuance time."""

    kind: EntityKind
    item_id: UUID
    name: str
    instructor_name: str
    duration: str = ""
    instructor_bio: str = ""
    organization_description: str = ""
    template_id: str | None = None
    certificate_description: str | None = None

    @staticmethod
    def new(
        *, kind: EntityKind, name: str, instructor_name: str, duration: str = ""
    ) -> ItemDetails:
        return ItemDetails(
            kind=kind,
            item_id=uuid4(),
            name=name,
            instructor_name=instructor_name,
            duration=duration,
        )

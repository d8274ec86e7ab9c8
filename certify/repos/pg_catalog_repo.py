"""PostgreSQL implementation of CatalogRepo.

Courses are read as sections -> lessons; events have no lessons, so each
active event section becomes one unit (see LessonCatalog.for_event).
Inactive courses, sections and lessons are invisible to the engine.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from certify.db.session import transaction
from certify.db.tables import (
    CourseLessonRow,
    CourseRow,
    CourseSectionRow,
    EventRow,
    EventSectionRow,
)
from certify.models.catalog import (
    CatalogLesson,
    CatalogSection,
    ItemDetails,
    LessonCatalog,
)
from certify.models.entity import EntityKind


class PgCatalogRepo:
    """Satisfies the CatalogRepo Protocol using PostgreSQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._sessions = session_factory

    async def get_catalog(
        self, kind: EntityKind, item_id: UUID
    ) -> LessonCatalog | None:
        if kind == "event":
            return await self._event_catalog(item_id)
        return await self._course_catalog(item_id)

    async def get_details(self, kind: EntityKind, item_id: UUID) -> ItemDetails | None:
        async with transaction(self._sessions) as session:
            if kind == "event":
                event = await _active_event(session, item_id)
                return None if event is None else _event_details(event)
            course = await _active_course(session, item_id)
            return None if course is None else _course_details(course)

    async def _course_catalog(self, course_id: UUID) -> LessonCatalog | None:
        sections_stmt = (
            select(CourseSectionRow)
            .where(
                CourseSectionRow.course_id == course_id,
                CourseSectionRow.is_active.is_(True),
            )
            .order_by(CourseSectionRow.position)
        )
        lessons_stmt = (
            select(CourseLessonRow)
            .join(CourseSectionRow, CourseLessonRow.section_id == CourseSectionRow.id)
            .where(
                CourseSectionRow.course_id == course_id,
                CourseSectionRow.is_active.is_(True),
                CourseLessonRow.is_active.is_(True),
            )
            .order_by(CourseLessonRow.position)
        )
        async with transaction(self._sessions) as session:
            if await _active_course(session, course_id) is None:
                return None
            section_rows = (await session.execute(sections_stmt)).scalars().all()
            lesson_rows = (await session.execute(lessons_stmt)).scalars().all()

        by_section: dict[UUID, list[CatalogLesson]] = {}
        for row in lesson_rows:
            by_section.setdefault(row.section_id, []).append(
                CatalogLesson(
                    id=row.id,
                    section_id=row.section_id,
                    position=row.position,
                    title=row.title,
                    lesson_type=row.lesson_type,
                )
            )
        return LessonCatalog(
            kind="course",
            item_id=course_id,
            sections=tuple(
                CatalogSection(
                    id=s.id,
                    position=s.position,
                    title=s.title,
                    lessons=tuple(by_section.get(s.id, ())),
                )
                for s in section_rows
            ),
        )

    async def _event_catalog(self, event_id: UUID) -> LessonCatalog | None:
        stmt = (
            select(EventSectionRow)
            .where(
                EventSectionRow.event_id == event_id,
                EventSectionRow.is_active.is_(True),
            )
            .order_by(EventSectionRow.position)
        )
        async with transaction(self._sessions) as session:
            if await _active_event(session, event_id) is None:
                return None
            rows = (await session.execute(stmt)).scalars().all()
        return LessonCatalog.for_event(
            event_id=event_id,
            sections=[(row.id, row.position, row.title) for row in rows],
        )


async def _active_course(session: AsyncSession, course_id: UUID) -> CourseRow | None:
    stmt = select(CourseRow).where(
        CourseRow.id == course_id, CourseRow.is_active.is_(True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def _active_event(session: AsyncSession, event_id: UUID) -> EventRow | None:
    stmt = select(EventRow).where(EventRow.id == event_id, EventRow.is_active.is_(True))
    return (await session.execute(stmt)).scalar_one_or_none()


def _course_details(row: CourseRow) -> ItemDetails:
    return ItemDetails(
        kind="course",
        item_id=row.id,
        name=row.name,
        instructor_name=row.instructor_name,
        duration=row.duration or "",
        instructor_bio=row.instructor_bio or "",
        organization_description=row.organization_description or "",
    )


def _event_details(row: EventRow) -> ItemDetails:
    return ItemDetails(
        kind="event",
        item_id=row.id,
        name=row.name,
        instructor_name=row.organizer_name,
        duration=row.duration or "",
        instructor_bio=row.organizer_bio or "",
        organization_description=row.organization_description or "",
        template_id=row.certificate_template_id,
        certificate_description=row.certificate_description,
    )

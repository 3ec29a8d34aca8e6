"""
Unit tests for chapter folder operations: insert/delete with renumbering,
partial failures and resuming a plan.
"""

import pytest
from unittest.mock import patch

from core.publishing.chapters import OPERATION_DELETE, OPERATION_INSERT
from core.publishing.exceptions import (
    InvalidInputError, InvalidPositionError, NotFoundError, PartialApplyFailure, StoreError,
)
from core.publishing.models import (
    BOOK_INFO_ASPECT, CHAPTER_INFO_ASPECT, PROP_BOOK_METADATA_STATUS, PROP_BOOK_TITLE,
    PROP_CHAPTER_NUMBER, PROP_NAME, PROP_NUMBER_OF_CHAPTERS, RenumberStep,
)
from core.publishing.service import PublishingService
from core.publishing.locks import BookLockRegistry

from tests.helpers import ISBN, add_chapters, numbers_and_titles


def _names_match_numbers(service, isbn):
    for chapter in service.list_chapters(isbn):
        assert chapter.name == f"chapter-{chapter.number}"


def _failing_rename(store, fail_on):
    """set_property wrapper that fails the ``fail_on``-th folder rename."""
    real = store.set_property
    calls = {"renames": 0}

    def flaky(node_id, key, value, touch=True):
        if key == PROP_NAME:
            calls["renames"] += 1
            if calls["renames"] == fail_on:
                raise StoreError("disk full")
        return real(node_id, key, value, touch=touch)

    return flaky


# ---------------------------------------------------------------------------
# Insert
# ---------------------------------------------------------------------------

class TestInsertChapter:

    def test_insert_into_empty_book(self, service, book):
        chapter = service.create_chapter(ISBN, 0, "Proem", "Homer")

        assert chapter.number == 1
        assert chapter.name == "chapter-1"
        assert service.get_book(ISBN).chapter_count == 1

    def test_insert_in_the_middle(self, service, book):
        add_chapters(service, ISBN, 3)

        chapter = service.create_chapter(ISBN, 2, "Interlude", "Homer")

        assert chapter.number == 2
        assert numbers_and_titles(service, ISBN) == [
            (1, "Chapter 1"), (2, "Interlude"), (3, "Chapter 2"), (4, "Chapter 3"),
        ]
        _names_match_numbers(service, ISBN)
        assert service.get_book(ISBN).chapter_count == 4

    def test_number_past_end_appends(self, service, book):
        add_chapters(service, ISBN, 2)
        assert service.create_chapter(ISBN, 99, "Last", "Homer").number == 3

    def test_numeric_string_accepted(self, service, book):
        add_chapters(service, ISBN, 2)
        assert service.create_chapter(ISBN, "1", "First", "Homer").number == 1

    def test_more_than_nine_chapters_sort_numerically(self, service, book):
        add_chapters(service, ISBN, 11)
        service.create_chapter(ISBN, 10, "Inserted", "Homer")

        numbers = [n for n, _ in numbers_and_titles(service, ISBN)]
        assert numbers == list(range(1, 13))
        assert service.list_chapters(ISBN)[9].title == "Inserted"

    def test_padded_folder_names(self, store, workflow, sink, book):
        from config.settings import settings

        config = settings.model_copy(update={"chapter_number_padding": 3})
        padded = PublishingService(store, workflow, sink, BookLockRegistry(timeout=1), config=config)
        padded.create_chapter(ISBN, 1, "One", "Homer")
        padded.create_chapter(ISBN, 1, "Zero", "Homer")

        assert [c.name for c in padded.list_chapters(ISBN)] == ["chapter-001", "chapter-002"]

    def test_invalid_isbn_writes_nothing(self, service, book):
        with pytest.raises(InvalidInputError):
            service.create_chapter("9780140449137", 1, "X", "Y")
        assert service.list_chapters(ISBN) == []

    def test_non_numeric_position(self, service, book):
        with pytest.raises(InvalidInputError):
            service.create_chapter(ISBN, "two", "X", "Y")
        assert service.list_chapters(ISBN) == []

    def test_unknown_book(self, service):
        with pytest.raises(NotFoundError):
            service.create_chapter(ISBN, 1, "X", "Y")

    def test_chapter_metadata(self, service, store, book):
        chapter = service.create_chapter(ISBN, 1, "Proem", "Homer")
        node = store.get_node(chapter.id)

        assert CHAPTER_INFO_ASPECT in node.aspects
        assert node.properties[PROP_CHAPTER_NUMBER] == 1
        assert chapter.title == "Proem"
        assert chapter.author == "Homer"
        assert chapter.status.value == "COMPLETE"

    def test_missing_author_marks_chapter_missing(self, service, book):
        assert service.create_chapter(ISBN, 1, "Proem", None).status.value == "MISSING"

    def test_book_info_copied_to_chapter(self, service, store, book):
        chapter = service.create_chapter(ISBN, 1, "Proem", "Homer")
        node = store.get_node(chapter.id)

        assert BOOK_INFO_ASPECT in node.aspects
        assert node.properties[PROP_BOOK_TITLE] == "The Odyssey"
        assert PROP_NUMBER_OF_CHAPTERS not in node.properties

    def test_book_info_not_copied_when_disabled(self, service, store, book):
        service.chapters.propagate_book_metadata = False
        chapter = service.create_chapter(ISBN, 1, "Proem", "Homer")
        assert BOOK_INFO_ASPECT not in store.get_node(chapter.id).aspects

    def test_rejects_non_dense_book(self, service, store, book):
        chapters = add_chapters(service, ISBN, 3)
        store.set_property(chapters[2].id, PROP_CHAPTER_NUMBER, 5)

        with pytest.raises(InvalidPositionError):
            service.create_chapter(ISBN, 1, "X", "Y")
        assert service.get_book(ISBN).chapter_count == 3


# ---------------------------------------------------------------------------
# Book aggregate
# ---------------------------------------------------------------------------

class TestBookAggregate:

    def test_incomplete_chapter_downgrades_complete_book(self, service, store, workflow, book):
        store.set_property(book.id, PROP_BOOK_METADATA_STATUS, "COMPLETE")

        service.create_chapter(ISBN, 1, "Proem", None)

        assert service.get_book(ISBN).metadata_status.value == "PARTIAL"
        ref = workflow.get_process_ref(ISBN)
        assert workflow.get_variables(ref)["metadataComplete"] is False

    def test_incomplete_chapter_keeps_missing_book_missing(self, service, workflow, book):
        service.create_chapter(ISBN, 1, "Proem", None)

        assert service.get_book(ISBN).metadata_status.value == "MISSING"
        ref = workflow.get_process_ref(ISBN)
        assert workflow.get_variables(ref)["metadataComplete"] is False

    def test_complete_chapter_never_upgrades(self, service, store, book):
        store.set_property(book.id, PROP_BOOK_METADATA_STATUS, "PARTIAL")
        service.create_chapter(ISBN, 1, "Two", "Homer")
        assert service.get_book(ISBN).metadata_status.value == "PARTIAL"

    def test_complete_chapter_keeps_status(self, service, workflow, book):
        service.create_chapter(ISBN, 1, "Proem", "Homer")

        assert service.get_book(ISBN).metadata_status.value == "MISSING"
        assert "metadataComplete" not in workflow.get_variables(workflow.get_process_ref(ISBN))

    def test_completed_workflow_is_left_alone(self, service, store, workflow, book):
        store.set_property(book.id, PROP_BOOK_METADATA_STATUS, "COMPLETE")
        workflow.complete_process(workflow.get_process_ref(ISBN))
        service.create_chapter(ISBN, 1, "Proem", None)
        assert service.get_book(ISBN).metadata_status.value == "PARTIAL"

    def test_workflow_sync_disabled(self, service, workflow, book):
        service.updater.sync_workflow_flag = False
        service.create_chapter(ISBN, 1, "Proem", None)
        assert workflow.get_variables(workflow.get_process_ref(ISBN)) == {}

    def test_delete_decrements_count(self, service, book):
        chapters = add_chapters(service, ISBN, 2)
        service.delete_chapter(chapters[0].id)
        assert service.get_book(ISBN).chapter_count == 1


# ---------------------------------------------------------------------------
# Delete
# ---------------------------------------------------------------------------

class TestDeleteChapter:

    def test_delete_in_the_middle(self, service, book):
        chapters = add_chapters(service, ISBN, 4)

        result = service.delete_chapter(chapters[1].id)

        assert result == {"isbn": ISBN, "deleted_number": 2, "chapter_count": 3}
        assert numbers_and_titles(service, ISBN) == [
            (1, "Chapter 1"), (2, "Chapter 3"), (3, "Chapter 4"),
        ]
        _names_match_numbers(service, ISBN)

    def test_delete_sole_chapter(self, service, book):
        (only,) = add_chapters(service, ISBN, 1)

        result = service.delete_chapter(only.id)

        assert result["chapter_count"] == 0
        assert service.list_chapters(ISBN) == []

    def test_delete_unknown_chapter(self, service, book):
        with pytest.raises(NotFoundError):
            service.delete_chapter("no-such-chapter")

    def test_delete_missing_reference(self, service):
        with pytest.raises(InvalidInputError):
            service.delete_chapter("  ")

    def test_delete_uses_current_number(self, service, book):
        chapters = add_chapters(service, ISBN, 3)
        # Chapter 3 moves to 4 after this insert; its id still identifies it
        service.create_chapter(ISBN, 1, "New first", "Homer")

        result = service.delete_chapter(chapters[2].id)

        assert result["deleted_number"] == 4
        assert [t for _, t in numbers_and_titles(service, ISBN)] == [
            "New first", "Chapter 1", "Chapter 2",
        ]


# ---------------------------------------------------------------------------
# Partial failure and resume
# ---------------------------------------------------------------------------

class TestPartialApply:

    def test_insert_failure_leaves_count_untouched(self, service, store, book):
        add_chapters(service, ISBN, 3)

        with patch.object(store, "set_property", side_effect=_failing_rename(store, 2)):
            with pytest.raises(PartialApplyFailure) as exc:
                service.create_chapter(ISBN, 1, "New first", "Homer")

        failure = exc.value
        assert failure.kind == "partial_apply_failure"
        assert failure.operation == OPERATION_INSERT
        assert failure.applied == 1
        assert len(failure.steps) == 3
        assert failure.context["planned"] == 3
        assert failure.pending == {"number": 1, "title": "New first", "author": "Homer"}
        assert service.get_book(ISBN).chapter_count == 3

    def test_half_renumbered_book_blocks_other_operations(self, service, store, book):
        chapters = add_chapters(service, ISBN, 3)
        with patch.object(store, "set_property", side_effect=_failing_rename(store, 2)):
            with pytest.raises(PartialApplyFailure):
                service.create_chapter(ISBN, 1, "New first", "Homer")

        with pytest.raises(InvalidPositionError):
            service.create_chapter(ISBN, 1, "Other", "Homer")
        with pytest.raises(InvalidPositionError):
            service.delete_chapter(chapters[0].id)

    def test_resume_insert(self, service, store, book):
        add_chapters(service, ISBN, 3)
        with patch.object(store, "set_property", side_effect=_failing_rename(store, 2)):
            with pytest.raises(PartialApplyFailure) as exc:
                service.create_chapter(ISBN, 1, "New first", "Homer")

        failure = exc.value
        chapter = service.resume(
            ISBN, failure.operation, [s.to_dict() for s in failure.steps], failure.pending
        )

        assert chapter.number == 1
        assert numbers_and_titles(service, ISBN) == [
            (1, "New first"), (2, "Chapter 1"), (3, "Chapter 2"), (4, "Chapter 3"),
        ]
        _names_match_numbers(service, ISBN)
        assert service.get_book(ISBN).chapter_count == 4

    def test_create_failure_after_renumbering(self, service, store, book):
        add_chapters(service, ISBN, 2)

        with patch.object(store, "create_child", side_effect=StoreError("quota")):
            with pytest.raises(PartialApplyFailure) as exc:
                service.create_chapter(ISBN, 2, "Middle", "Homer")

        failure = exc.value
        assert failure.applied == len(failure.steps) == 1
        assert service.get_book(ISBN).chapter_count == 2

        service.resume(ISBN, OPERATION_INSERT, [s.to_dict() for s in failure.steps], failure.pending)

        assert numbers_and_titles(service, ISBN) == [
            (1, "Chapter 1"), (2, "Middle"), (3, "Chapter 2"),
        ]
        assert service.get_book(ISBN).chapter_count == 3

    def test_resume_delete(self, service, store, book):
        chapters = add_chapters(service, ISBN, 4)

        with patch.object(store, "set_property", side_effect=_failing_rename(store, 1)):
            with pytest.raises(PartialApplyFailure) as exc:
                service.delete_chapter(chapters[1].id)

        failure = exc.value
        assert failure.operation == OPERATION_DELETE
        assert failure.applied == 0
        assert service.get_book(ISBN).chapter_count == 4

        count = service.resume(
            ISBN, OPERATION_DELETE, [s.to_dict() for s in failure.steps], failure.pending
        )

        assert count == 3
        assert numbers_and_titles(service, ISBN) == [
            (1, "Chapter 1"), (2, "Chapter 3"), (3, "Chapter 4"),
        ]
        _names_match_numbers(service, ISBN)

    def test_resume_insert_twice(self, service, store, book):
        add_chapters(service, ISBN, 3)
        with patch.object(store, "set_property", side_effect=_failing_rename(store, 2)):
            with pytest.raises(PartialApplyFailure) as exc:
                service.create_chapter(ISBN, 1, "New first", "Homer")

        failure = exc.value
        steps = [s.to_dict() for s in failure.steps]
        first = service.resume(ISBN, OPERATION_INSERT, steps, failure.pending)
        again = service.resume(ISBN, OPERATION_INSERT, steps, failure.pending)

        assert again.id == first.id
        assert len(service.list_chapters(ISBN)) == 4
        assert service.get_book(ISBN).chapter_count == 4

    def test_resume_delete_twice(self, service, store, book):
        chapters = add_chapters(service, ISBN, 4)
        with patch.object(store, "set_property", side_effect=_failing_rename(store, 1)):
            with pytest.raises(PartialApplyFailure) as exc:
                service.delete_chapter(chapters[1].id)

        failure = exc.value
        steps = [s.to_dict() for s in failure.steps]
        service.resume(ISBN, OPERATION_DELETE, steps, failure.pending)
        count = service.resume(ISBN, OPERATION_DELETE, steps, failure.pending)

        assert count == 3
        assert len(service.list_chapters(ISBN)) == 3
        assert service.get_book(ISBN).chapter_count == 3

    def test_resume_after_count_update_failed(self, service, store, book):
        chapters = add_chapters(service, ISBN, 3)
        real = store.set_property

        def no_count(node_id, key, value, touch=True):
            if key == PROP_NUMBER_OF_CHAPTERS:
                raise StoreError("disk full")
            return real(node_id, key, value, touch=touch)

        with patch.object(store, "set_property", side_effect=no_count):
            with pytest.raises(PartialApplyFailure) as exc:
                service.delete_chapter(chapters[0].id)
        assert service.get_book(ISBN).chapter_count == 3

        failure = exc.value
        count = service.resume(
            ISBN, OPERATION_DELETE, [s.to_dict() for s in failure.steps], failure.pending
        )

        assert count == 2
        assert service.get_book(ISBN).chapter_count == 2

    def test_empty_delete_plan_leaves_healthy_book_alone(self, service, book):
        add_chapters(service, ISBN, 2)

        with pytest.raises(InvalidInputError):
            service.resume(ISBN, OPERATION_DELETE, [], {})
        assert service.get_book(ISBN).chapter_count == 2

    def test_delete_plan_for_live_chapter_is_stale(self, service, book):
        chapters = add_chapters(service, ISBN, 2)

        with pytest.raises(InvalidInputError):
            service.resume(ISBN, OPERATION_DELETE, [], {"chapter_id": chapters[1].id, "number": 2})
        assert len(service.list_chapters(ISBN)) == 2
        assert service.get_book(ISBN).chapter_count == 2

    def test_resume_finished_insert_is_a_no_op(self, service, book):
        add_chapters(service, ISBN, 2)
        chapter = service.create_chapter(ISBN, 3, "Epilogue", "Homer")

        again = service.resume(
            ISBN, OPERATION_INSERT, [], {"number": 3, "title": "Epilogue", "author": "Homer"}
        )

        assert again.id == chapter.id
        assert service.get_book(ISBN).chapter_count == 3

    def test_reapplying_a_finished_plan_is_a_no_op(self, service, book):
        chapters = add_chapters(service, ISBN, 3)
        service.create_chapter(ISBN, 2, "Interlude", "Homer")
        before = numbers_and_titles(service, ISBN)

        steps = [
            RenumberStep(chapters[2].id, 3, 4),
            RenumberStep(chapters[1].id, 2, 3),
        ]
        service.chapters.apply_plan(service.get_book(ISBN), steps, OPERATION_INSERT)

        assert numbers_and_titles(service, ISBN) == before
        _names_match_numbers(service, ISBN)

    def test_resume_rejects_stale_plan(self, service, book):
        chapters = add_chapters(service, ISBN, 3)
        stale = [{"chapter_id": chapters[0].id, "old_number": 5, "new_number": 6}]

        with pytest.raises(InvalidInputError):
            service.resume(ISBN, OPERATION_INSERT, stale, {"number": 1})

    def test_resume_rejects_foreign_chapter(self, service, book):
        other = service.register_book("0306406152")
        (foreign,) = add_chapters(service, other.isbn, 1)
        plan = [{"chapter_id": foreign.id, "old_number": 1, "new_number": 2}]

        with pytest.raises(InvalidInputError):
            service.resume(ISBN, OPERATION_INSERT, plan, {"number": 1})

    def test_resume_rejects_unknown_operation(self, service, book):
        with pytest.raises(InvalidInputError):
            service.resume(ISBN, "move", [], {})

    def test_resume_rejects_malformed_step(self, service, book):
        with pytest.raises(InvalidInputError):
            service.resume(ISBN, OPERATION_INSERT, [{"id": "x"}], {"number": 1})


# ---------------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------------

class TestContent:

    def test_put_content(self, service, store, book):
        (chapter,) = add_chapters(service, ISBN, 1)
        service.put_chapter_content(chapter.id, b"<p>Sing, O Muse</p>", "text/html")

        content = store.read_content(chapter.id)
        assert content.data == b"<p>Sing, O Muse</p>"

    def test_empty_content_rejected(self, service, book):
        (chapter,) = add_chapters(service, ISBN, 1)
        with pytest.raises(InvalidInputError):
            service.put_chapter_content(chapter.id, b"", "text/html")

    def test_non_utf8_content_rejected(self, service, store, book):
        (chapter,) = add_chapters(service, ISBN, 1)

        with pytest.raises(InvalidInputError):
            service.put_chapter_content(chapter.id, "café".encode("latin-1"), "text/plain")
        assert store.read_content(chapter.id) is None

    def test_unsupported_content_type_rejected(self, service, store, book):
        (chapter,) = add_chapters(service, ISBN, 1)

        with pytest.raises(InvalidInputError) as exc:
            service.put_chapter_content(chapter.id, b"%PDF-1.7", "application/pdf")
        assert "text/markdown" in exc.value.context["supported"]
        assert store.read_content(chapter.id) is None

    def test_content_type_parameters_accepted(self, service, store, book):
        (chapter,) = add_chapters(service, ISBN, 1)
        service.put_chapter_content(chapter.id, "café".encode(), "text/plain; charset=utf-8")
        assert store.read_content(chapter.id).mimetype == "text/plain; charset=utf-8"

"""
Memories Backend: Page Controller Tests
========================================

What we test:
    ✅ Add / remove scenario on an empty page
    ✅ Change events after every mutation, none for no-op calls
    ✅ Stale image results are discarded (newer pick, closed session)
    ✅ Text styling keeps attributed and plain body text in sync
    ✅ Background policy (color clears template, template keeps color)
    ✅ Save failures leave the session dirty; flatten failures never transmit
"""

import asyncio
import uuid
from unittest.mock import AsyncMock

import pytest

from memories.canvas.controller import ChangeEvent, ChangeKind, PageController
from memories.canvas.document import BackgroundKind, PageDocument
from memories.canvas.geometry import Point, Rect, Size
from memories.canvas.rich_text import FontSpec, RichText, TextStyle
from memories.exceptions import (
    DatabaseError,
    DecodeError,
    FlattenError,
    NotFoundError,
    SessionClosedError,
    ValidationError,
)
from memories.services.base import DocumentStore, LetterTransport, TemplateSource

BIG = FontSpec(family="DejaVuSans", size=64)


def make_controller(**collaborators) -> PageController:
    controller = PageController(**collaborators)
    controller.load_session(PageDocument.create_empty())
    return controller


def recorder(controller: PageController):
    events = []
    controller.session.subscribe(events.append)
    return events


class TestItems:
    def test_add_then_remove_scenario(self, png_bytes):
        controller = make_controller()
        document = controller.document
        before = document.model_copy(deep=True)

        item = controller.add_image(png_bytes, Size(width=400, height=200), Point(x=500, y=700))
        assert len(document.items) == 1
        assert item.frame.x == pytest.approx(375)
        assert item.frame.width == pytest.approx(250)
        assert item.frame.height == pytest.approx(125)
        assert item.frame.center == Point(x=500, y=700)

        assert controller.remove_item(item.id) is True
        assert document.items == []
        assert document == before

    def test_add_invalid_image_adds_nothing(self):
        controller = make_controller()
        with pytest.raises(DecodeError):
            controller.add_image(b"", Size(width=1, height=1), Point())
        assert controller.document.items == []
        assert controller.session.dirty is False

    def test_events(self, png_bytes):
        controller = make_controller()
        events = recorder(controller)

        item = controller.add_image(png_bytes, Size(width=4, height=2), Point())
        controller.update_item_transform(item.id, Rect(x=0, y=0, width=10, height=5), 0.3)
        controller.remove_item(item.id)

        assert events == [
            ChangeEvent(kind=ChangeKind.ITEM_ADDED, item_id=item.id),
            ChangeEvent(kind=ChangeKind.ITEM_UPDATED, item_id=item.id),
            ChangeEvent(kind=ChangeKind.ITEM_REMOVED, item_id=item.id),
        ]

    def test_absent_ids_are_silent(self):
        controller = make_controller()
        events = recorder(controller)
        assert controller.update_item_transform(uuid.uuid4(), Rect(), 0.0) is False
        assert controller.remove_item(uuid.uuid4()) is False
        assert events == []
        assert controller.session.dirty is False

    def test_unsubscribe(self, png_bytes):
        controller = make_controller()
        events = []
        unsubscribe = controller.session.subscribe(events.append)
        unsubscribe()
        controller.add_image(png_bytes, Size(width=1, height=1), Point())
        assert events == []

    def test_failing_listener_does_not_undo_mutation(self, png_bytes):
        controller = make_controller()

        def broken(event):
            raise RuntimeError("listener bug")

        controller.session.subscribe(broken)
        controller.add_image(png_bytes, Size(width=1, height=1), Point())
        assert len(controller.document.items) == 1


class TestAsyncImages:
    @pytest.mark.asyncio
    async def test_loader_result_is_added(self, png_bytes):
        controller = make_controller()

        async def loader():
            return png_bytes, Size(width=400, height=200)

        item = await controller.add_image_from(loader, Point(x=500, y=700))
        assert item is not None
        assert controller.document.items == [item]

    @pytest.mark.asyncio
    async def test_older_pick_is_discarded(self, png_bytes, jpeg_bytes):
        controller = make_controller()
        release_slow = asyncio.Event()

        async def slow_loader():
            await release_slow.wait()
            return png_bytes, Size(width=400, height=200)

        async def fast_loader():
            return jpeg_bytes, Size(width=300, height=600)

        slow = asyncio.create_task(controller.add_image_from(slow_loader, Point()))
        await asyncio.sleep(0)
        fast_item = await controller.add_image_from(fast_loader, Point())
        release_slow.set()

        assert await slow is None
        assert controller.document.items == [fast_item]

    @pytest.mark.asyncio
    async def test_result_after_close_is_discarded(self, png_bytes):
        controller = make_controller()
        document = controller.document
        release = asyncio.Event()

        async def loader():
            await release.wait()
            return png_bytes, Size(width=400, height=200)

        pending = asyncio.create_task(controller.add_image_from(loader, Point()))
        await asyncio.sleep(0)
        controller.close()
        release.set()

        assert await pending is None
        assert document.items == []

    @pytest.mark.asyncio
    async def test_loader_decode_error_propagates(self):
        controller = make_controller()

        async def loader():
            raise DecodeError()

        with pytest.raises(DecodeError):
            await controller.add_image_from(loader, Point())
        assert controller.document.items == []


class TestSession:
    def test_mutation_after_close_raises(self, png_bytes):
        controller = make_controller()
        controller.close()
        with pytest.raises(SessionClosedError):
            controller.add_image(png_bytes, Size(width=1, height=1), Point())
        with pytest.raises(SessionClosedError):
            controller.set_background("none")

    def test_no_session_raises(self):
        with pytest.raises(SessionClosedError):
            PageController().document

    def test_load_session_closes_previous(self):
        controller = make_controller()
        first = controller.session
        controller.load_session(PageDocument.create_empty())
        assert first.live is False
        assert controller.session is not first

    @pytest.mark.asyncio
    async def test_open_loads_through_store(self, sample_document):
        store = AsyncMock(spec=DocumentStore)
        store.load_document.return_value = sample_document
        controller = PageController(store=store)

        session = await controller.open(sample_document.id)
        store.load_document.assert_awaited_once_with(sample_document.id)
        assert session.document is sample_document


class TestText:
    def test_apply_style_writes_both_representations(self):
        controller = make_controller()
        controller.set_rich_text(RichText.from_plain("Hello world", controller.session.typing_style))
        controller.apply_text_style(6, 5, BIG, "#aa0000")

        document = controller.document
        rich = RichText.from_bytes(document.attributed_body_text)
        assert document.body_text == "Hello world" == rich.plain_text
        assert rich.runs[-1].text == "world"
        assert rich.runs[-1].style == TextStyle(font=BIG, color="#AA0000")

    def test_zero_length_sets_typing_style_only(self):
        controller = make_controller()
        controller.set_rich_text(RichText.from_plain("abc", controller.session.typing_style))
        controller.session.dirty = False
        events = recorder(controller)
        stored = controller.document.attributed_body_text

        controller.apply_text_style(1, 0, BIG, "#00FF00")
        assert controller.document.attributed_body_text == stored
        assert controller.session.typing_style == TextStyle(font=BIG, color="#00FF00")
        assert controller.session.dirty is False
        assert events == [ChangeEvent(kind=ChangeKind.TYPING_STYLE_CHANGED)]

    def test_typed_text_uses_typing_style(self):
        controller = make_controller()
        controller.apply_text_style(0, 0, BIG, "#0000FF")
        controller.insert_text(0, "Hi")
        rich = controller.rich_text
        assert controller.document.body_text == "Hi"
        assert rich.runs[0].style == TextStyle(font=BIG, color="#0000FF")

    def test_delete_text(self):
        controller = make_controller()
        controller.insert_text(0, "Hello world")
        controller.delete_text(5, 6)
        assert controller.document.body_text == "Hello"

    def test_invalid_color_rejected(self):
        controller = make_controller()
        with pytest.raises(ValidationError):
            controller.apply_text_style(0, 0, BIG, "red")

    def test_typing_style_follows_loaded_text(self, sample_document):
        controller = PageController()
        session = controller.load_session(sample_document)
        assert session.typing_style.color == "#AA0000"


class TestBackground:
    def test_color_clears_template(self):
        controller = make_controller()
        controller.set_background("image", "letterbg1")
        active = controller.set_background("color", "#fff6e0")
        assert active.kind is BackgroundKind.COLOR
        assert controller.document.background_image_name is None
        assert controller.document.background_color == "#FFF6E0"

    def test_template_keeps_color(self):
        controller = make_controller()
        controller.set_background("color", "#112233")
        active = controller.set_background(BackgroundKind.IMAGE, "letterbg1")
        assert active.kind is BackgroundKind.IMAGE
        assert controller.document.background_color == "#112233"

    def test_none_clears_both(self):
        controller = make_controller()
        controller.set_background("color", "#112233")
        controller.set_background("image", "letterbg1")
        active = controller.set_background("none")
        assert active.kind is BackgroundKind.NONE
        assert controller.document.background_color is None
        assert controller.document.background_image_name is None

    @pytest.mark.parametrize(
        "kind, value",
        [("color", "not-a-color"), ("image", None), ("image", ""), ("gradient", "x")],
    )
    def test_invalid_requests(self, kind, value):
        controller = make_controller()
        with pytest.raises(ValidationError):
            controller.set_background(kind, value)

    def test_background_event(self):
        controller = make_controller()
        events = recorder(controller)
        controller.set_background("color", "#000000")
        assert events == [ChangeEvent(kind=ChangeKind.BACKGROUND_CHANGED)]


class TestFlattenSaveSend:
    @pytest.mark.asyncio
    async def test_save_clears_dirty(self, png_bytes):
        store = AsyncMock(spec=DocumentStore)
        controller = make_controller(store=store)
        controller.add_image(png_bytes, Size(width=1, height=1), Point())
        await controller.save()
        store.save_document.assert_awaited_once_with(controller.document)
        assert controller.session.dirty is False

    @pytest.mark.asyncio
    async def test_save_failure_keeps_dirty(self, png_bytes):
        store = AsyncMock(spec=DocumentStore)
        store.save_document.side_effect = DatabaseError()
        controller = make_controller(store=store)
        controller.add_image(png_bytes, Size(width=1, height=1), Point())

        with pytest.raises(DatabaseError):
            await controller.save()
        assert controller.session.dirty is True
        store.save_document.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_flatten_uses_template(self, make_image):
        templates = AsyncMock(spec=TemplateSource)
        templates.load_template.return_value = make_image(10, 10, color="#00FF00")
        controller = make_controller(templates=templates)
        controller.set_background("image", "letterbg1")

        data = await controller.flatten_to_image(Size(width=100, height=140))
        templates.load_template.assert_awaited_once_with("letterbg1")
        assert data[:2] == b"\xff\xd8"

    @pytest.mark.asyncio
    async def test_missing_template_still_flattens(self):
        templates = AsyncMock(spec=TemplateSource)
        templates.load_template.side_effect = NotFoundError(resource="template")
        controller = make_controller(templates=templates)
        controller.set_background("image", "gone")
        data = await controller.flatten_to_image(Size(width=100, height=140))
        assert data[:2] == b"\xff\xd8"

    @pytest.mark.asyncio
    async def test_flatten_empty_bounds(self):
        controller = make_controller()
        with pytest.raises(FlattenError):
            await controller.flatten_to_image(Size(width=0, height=0))

    @pytest.mark.asyncio
    async def test_send_letter_never_transmits_after_flatten_failure(self):
        transport = AsyncMock(spec=LetterTransport)
        controller = make_controller(transport=transport)
        with pytest.raises(FlattenError):
            await controller.send_letter(uuid.uuid4(), Size(width=0, height=1400))
        transport.send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_send_letter(self):
        transport = AsyncMock(spec=LetterTransport)
        recipient = uuid.uuid4()
        controller = make_controller(transport=transport)
        await controller.send_letter(recipient, Size(width=100, height=140))

        transport.send.assert_awaited_once()
        args, kwargs = transport.send.call_args
        assert args[0] == recipient
        assert args[1][:2] == b"\xff\xd8"
        assert kwargs == {"sender_id": None}

"""
Memories Backend: Geometry & Page Document Tests
=================================================

What we test:
    ✅ Rect keyed form [[x, y], [w, h]] in and out
    ✅ Document round trip (bytes and dict), blobs byte-exact
    ✅ Persisted camelCase field names
    ✅ Item payload must match its type tag
    ✅ Background resolution (template wins, then color, then white)
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from memories.canvas.document import (
    DEFAULT_BACKGROUND_COLOR,
    VIRTUAL_PAGE_SIZE,
    Background,
    BackgroundKind,
    CanvasItem,
    ItemType,
    PageDocument,
)
from memories.canvas.geometry import Point, Rect, Size


class TestRect:
    def test_accepts_keyed_list_form(self):
        rect = Rect.model_validate([[10, 20], [30, 40]])
        assert (rect.x, rect.y, rect.width, rect.height) == (10, 20, 30, 40)

    def test_accepts_object_form(self):
        rect = Rect.model_validate({"x": 1, "y": 2, "width": 3, "height": 4})
        assert rect.max_x == 4
        assert rect.max_y == 6

    def test_serializes_to_keyed_list_form(self):
        assert Rect(x=375, y=637.5, width=250, height=125).model_dump() == [[375, 637.5], [250, 125]]

    def test_rejects_malformed_list(self):
        with pytest.raises(PydanticValidationError):
            Rect.model_validate([[1, 2, 3], [4, 5]])

    def test_centered_at(self):
        rect = Rect.centered_at(Point(x=500, y=700), Size(width=250, height=125))
        assert rect.center == Point(x=500, y=700)
        assert rect.origin == Point(x=375, y=637.5)

    def test_scaled(self):
        rect = Rect(x=10, y=20, width=30, height=40).scaled(0.5)
        assert rect == Rect(x=5, y=10, width=15, height=20)

    def test_is_empty(self):
        assert Rect(width=0, height=10).is_empty
        assert not Rect(width=1, height=1).is_empty


class TestPageDocument:
    def test_create_empty_defaults(self):
        document = PageDocument.create_empty()
        assert document.items == []
        assert document.drawing_data == b""
        assert document.body_text == ""
        assert document.background_color is None
        assert document.background.kind is BackgroundKind.NONE
        assert document.background.fill_color == DEFAULT_BACKGROUND_COLOR

    def test_create_empty_gives_new_ids(self):
        assert PageDocument.create_empty().id != PageDocument.create_empty().id

    def test_virtual_page_size(self):
        assert VIRTUAL_PAGE_SIZE == Size(width=1000, height=1400)

    def test_bytes_round_trip(self, sample_document):
        restored = PageDocument.from_bytes(sample_document.to_bytes())
        assert restored == sample_document
        assert restored.drawing_data == b"\x00\x01ink\xff"
        assert restored.items[0].image_data == sample_document.items[0].image_data
        assert restored.attributed_body_text == sample_document.attributed_body_text

    def test_dict_round_trip(self, sample_document):
        assert PageDocument.from_dict(sample_document.to_dict()) == sample_document

    def test_round_trip_with_background_template(self, sample_document):
        sample_document.set_background_image("letterbg1")
        data = sample_document.to_bytes()
        restored = PageDocument.from_bytes(data)
        assert restored == sample_document
        assert restored.background_image_name == "letterbg1"
        assert restored.background_color == "#FFF6E0"
        assert PageDocument.from_dict(sample_document.to_dict()) == sample_document

    def test_persisted_field_names(self, sample_document):
        data = sample_document.to_dict()
        assert set(data) == {
            "id",
            "drawingData",
            "items",
            "bodyText",
            "attributedBodyText",
            "backgroundColor",
            "backgroundImageName",
        }
        item = data["items"][0]
        assert item["type"] == "image"
        assert item["frame"] == [[375.0, 637.5], [250.0, 125.0]]
        assert isinstance(item["imageData"], str)

    def test_item_order_preserved(self, png_bytes):
        document = PageDocument.create_empty()
        for x in (100, 200, 300):
            document.items.append(
                CanvasItem(
                    frame=Rect(x=x, y=0, width=10, height=10),
                    type=ItemType.IMAGE,
                    image_data=png_bytes,
                )
            )
        restored = PageDocument.from_bytes(document.to_bytes())
        assert [item.frame.x for item in restored.items] == [100, 200, 300]

    def test_background_color_normalized(self):
        document = PageDocument.create_empty()
        document.set_background_color("fff6e0")
        assert document.background_color == "#FFF6E0"

    def test_background_color_rejects_garbage(self):
        document = PageDocument.create_empty()
        with pytest.raises(PydanticValidationError):
            document.set_background_color("#12345")

    def test_template_wins_over_color(self):
        document = PageDocument.create_empty()
        document.set_background_color("#112233")
        document.set_background_image("letterbg1")
        assert document.background == Background.image("letterbg1")
        document.set_background_image(None)
        assert document.background == Background.color("#112233")

    def test_empty_template_name_clears(self):
        document = PageDocument.create_empty()
        document.set_background_image("")
        assert document.background_image_name is None

    def test_id_is_frozen(self):
        document = PageDocument.create_empty()
        with pytest.raises(PydanticValidationError):
            document.id = PageDocument.create_empty().id


class TestCanvasItem:
    def test_image_item_requires_image_data(self):
        with pytest.raises(PydanticValidationError):
            CanvasItem(frame=Rect(width=1, height=1), type=ItemType.IMAGE)

    def test_text_item_rejects_image_data(self):
        with pytest.raises(PydanticValidationError):
            CanvasItem(
                frame=Rect(width=1, height=1),
                type=ItemType.TEXT,
                text_content="hi",
                image_data=b"x",
            )

    def test_legacy_text_item_loads(self):
        item = CanvasItem.model_validate(
            {"id": "6f9619ff-8b86-d011-b42d-00c04fc964ff", "frame": [[0, 0], [300, 100]],
             "rotation": 0.5, "type": "text", "textContent": "old note"}
        )
        assert item.is_legacy_text
        assert item.text_content == "old note"

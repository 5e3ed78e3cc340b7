"""
Memories Backend: Canvas Editor Core
=====================================

What:  The page model, item operations, transform math, rich text,
       rendering and the PageController that ties them together.
How:   Pure Python plus Pillow for rasterizing. No database or network
       access; collaborators are injected into the PageController.

Module Inventory:
    - geometry.py:    Point, Size, Rect, EdgeInsets
    - document.py:    PageDocument, CanvasItem, Background
    - items.py:       insert_image, update_transform, remove
    - transform.py:   fit_to_viewport, resize_maintaining_aspect, GestureSnapshot
    - rich_text.py:   RichText and its styles
    - fonts.py:       font lookup for rendering
    - render.py:      render_page, flatten
    - controller.py:  PageController, EditorSession, ChangeEvent
"""

import pytest

from cardslicer.errors import InvalidConfigurationError
from cardslicer.models.extraction_settings import Grid, SkipEntry
from cardslicer.models.layout_mode import FaceType, LayoutMode
from cardslicer.models.page import PageDescriptor, alternating_pages
from cardslicer.services.addressing import CardIdentity
from cardslicer.services.render_scheduler import RenderState
from cardslicer.services.settings_resolver import resolve_settings
from cardslicer.services.workflow_state import WorkflowState


def test_mode_change_resets_layout_settings():
    state = WorkflowState(LayoutMode.duplex("short"), alternating_pages(2))
    changes = []
    state.extraction_changed.connect(changes.append)
    state.toggle_skip(0, 0, 0, FaceType.FRONT)
    state.mode = LayoutMode.gutter_fold("vertical")
    assert state.extraction.grid == Grid(4, 2)
    assert state.extraction.skipped == ()
    assert len(changes) == 2


def test_setters_validate():
    state = WorkflowState(LayoutMode.gutter_fold("vertical"), [PageDescriptor(0)])
    with pytest.raises(InvalidConfigurationError):
        state.set_grid(2, 3)
    assert state.extraction.grid == Grid(4, 2)
    with pytest.raises(InvalidConfigurationError):
        state.set_gutter_width(-1)
    assert state.set_crop(top=10).crop.top == 10


def test_toggle_skip_pairs_in_gutter_fold():
    state = WorkflowState(LayoutMode.gutter_fold("vertical"), [PageDescriptor(0)])
    state.toggle_skip(0, 1, 0, FaceType.FRONT)
    assert set(state.extraction.skipped) == {
        SkipEntry(0, 1, 0, FaceType.FRONT),
        SkipEntry(0, 1, 1, FaceType.BACK),
    }
    state.clear_skips()
    assert state.extraction.skipped == ()


def test_queries_follow_active_pages():
    pages = alternating_pages(4)
    state = WorkflowState(LayoutMode.duplex("short"), pages)
    state.set_grid(2, 2)
    assert state.total_cards() == 8
    state.pages = [p if p.index < 2 else PageDescriptor(p.index, p.face_type, skip=True) for p in pages]
    assert state.total_cards() == 4
    assert state.identity(0) == CardIdentity(FaceType.FRONT, 1)
    assert state.available_ids(FaceType.BACK) == [1, 2, 3, 4]


def test_override_cycle_changes_identity():
    state = WorkflowState(LayoutMode.simplex(), [PageDescriptor(0, FaceType.FRONT)])
    state.set_grid(1, 2)
    state.toggle_override(0, 0, 1)
    assert state.identity(1).face is FaceType.FRONT
    state.toggle_override(0, 0, 1)
    assert state.identity(1) == CardIdentity(FaceType.BACK, 2)
    state.toggle_override(0, 0, 1)
    assert state.extraction.overrides == ()


def test_preview_card_publishes_image(sheet, marker, memory_provider):
    provider = memory_provider({0: sheet(400, 400, 2, 2)})
    state = WorkflowState(LayoutMode.simplex(), [PageDescriptor(0, FaceType.FRONT)], provider=provider)
    state.set_grid(2, 2)
    ready = []
    state.card_preview_ready.connect(lambda index, image: ready.append(index))
    image = state.preview_card(3)
    assert image.pixel(5, 5) == marker(0, 3).rgb()
    assert ready == [3]
    assert state.preview_card(9) is None


def test_preview_without_provider():
    state = WorkflowState(LayoutMode.simplex())
    with pytest.raises(RuntimeError):
        state.preview_card(0)


def test_row_and_column_skips_and_override_reset():
    state = WorkflowState(LayoutMode.gutter_fold("vertical"), [PageDescriptor(0)])
    state.skip_row(0, 2)
    assert len(state.extraction.skipped) == 2
    state.skip_column(0, 0, FaceType.FRONT)
    assert SkipEntry(0, 3, 0, FaceType.FRONT) in state.extraction.skipped
    assert SkipEntry(0, 3, 1, FaceType.BACK) in state.extraction.skipped
    state.toggle_override(0, 0, 0)
    state.clear_overrides()
    assert state.extraction.overrides == ()


def test_from_effective_keeps_resolved_settings():
    settings = resolve_settings({"type": "duplex", "flipEdge": "long"}, {"grid": {"rows": 3, "columns": 3}},
                                pages=alternating_pages(2))
    state = WorkflowState.from_effective(settings)
    assert state.mode == LayoutMode.duplex("long")
    assert state.effective() == settings


def test_preview_rejects_gutter_wider_than_page(sheet, memory_provider):
    provider = memory_provider({0: sheet(600, 800, 2, 2)})
    state = WorkflowState(LayoutMode.gutter_fold("vertical"), [PageDescriptor(0)], provider=provider)
    state.set_grid(2, 2)
    state.set_gutter_width(5000)
    with pytest.raises(InvalidConfigurationError, match="cropped span"):
        state.preview_card(0)
    assert state.scheduler.state is RenderState.ERROR

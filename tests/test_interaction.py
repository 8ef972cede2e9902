import random

import pytest

from tilestitch.interaction import CompositeInteractionEngine, InteractionState, PointerHub
from tilestitch.stitch import StitchEngine
from tilestitch.tiles import Tile, TileCollection


class FakeTimer:
    def __init__(self, msec, callback):
        self.msec = msec
        self.callback = callback
        self.cancelled = False

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.callback()


@pytest.fixture
def timers():
    return []


@pytest.fixture
def engine(timers):
    tiles = TileCollection([
        Tile(source_id="a", intrinsic_width=400, intrinsic_height=300, display_width=300, display_height=225),
        Tile(source_id="b", intrinsic_width=300, intrinsic_height=300, display_width=225, display_height=225),
        Tile(source_id="c", intrinsic_width=300, intrinsic_height=600, display_width=112.5, display_height=225),
    ])
    composite = StitchEngine().stitch(tiles)

    def factory(msec, callback):
        timer = FakeTimer(msec, callback)
        timers.append(timer)
        return timer

    return CompositeInteractionEngine(composite, PointerHub(), factory)


def uid(engine, index):
    return engine.composite.tiles[index].uid


def contained(engine, tile):
    c = engine.composite
    return (0 <= tile.x and 0 <= tile.y
            and tile.x + tile.display_width <= c.canvas_width + 1e-9
            and tile.y + tile.display_height <= c.canvas_height + 1e-9)


def test_drag_moves_and_clamps(engine):
    tile = engine.composite.tiles[1]
    assert engine.pointer_down(tile.uid, 400, 100)
    engine.hub.move(420, 100)
    assert engine.state is InteractionState.DRAGGING
    assert tile.x == 320
    engine.hub.move(5000, 5000)
    assert tile.x == engine.composite.canvas_width - tile.display_width
    assert tile.y == 0
    engine.hub.move(-5000, -5000)
    assert (tile.x, tile.y) == (0, 0)
    engine.hub.release(-5000, -5000)
    assert engine.state is InteractionState.IDLE


def test_small_moves_before_long_press_do_not_drag(engine, timers):
    tile = engine.composite.tiles[0]
    engine.pointer_down(tile.uid, 10, 10)
    engine.hub.move(11, 12)
    assert engine.state is InteractionState.PRESSED
    assert tile.x == 0
    timers[0].fire()
    assert engine.state is InteractionState.DRAGGING


def test_movement_cancels_long_press_timer(engine, timers):
    engine.pointer_down(uid(engine, 0), 10, 10)
    engine.hub.move(40, 10)
    assert timers[0].cancelled
    assert engine.state is InteractionState.DRAGGING


def test_release_brings_tile_to_front_and_frees_listeners(engine):
    first = uid(engine, 0)
    engine.pointer_down(first, 10, 10)
    assert engine.hub.listener_count == 2
    engine.hub.move(30, 10)
    engine.hub.release(30, 10)
    assert engine.hub.listener_count == 0
    assert engine.composite.z_order[-1] == first
    assert [t.uid for t in engine.composite.render_order()][-1] == first


def test_gestures_are_exclusive(engine):
    assert engine.pointer_down(uid(engine, 0), 10, 10)
    assert not engine.pointer_down(uid(engine, 1), 310, 10)
    assert engine.active_uid == uid(engine, 0)
    engine.hub.release(10, 10)
    assert engine.pointer_down(uid(engine, 1), 310, 10)


def test_resize_keeps_aspect_and_anchor(engine):
    tile = engine.composite.tiles[0]
    engine.pointer_down(tile.uid, 300, 225, handle=True)
    assert engine.state is InteractionState.RESIZING
    engine.hub.move(200, 225)
    assert (tile.x, tile.y) == (0, 0)
    assert tile.display_width == pytest.approx(200)
    assert tile.display_width / tile.display_height == pytest.approx(4 / 3)


def test_resize_clamps_to_canvas(engine):
    tile = engine.composite.tiles[0]
    engine.pointer_down(tile.uid, 300, 225, handle=True)
    engine.hub.move(900, 225)
    assert tile.display_height == pytest.approx(engine.composite.canvas_height)
    assert tile.display_width / tile.display_height == pytest.approx(4 / 3)
    assert contained(engine, tile)


def test_resize_minimum_floor(engine):
    tile = engine.composite.tiles[2]
    engine.pointer_down(tile.uid, tile.x + 110, 220, handle=True)
    engine.hub.move(-1000, 0)
    assert tile.display_width == pytest.approx(20)
    assert tile.display_height == pytest.approx(40)


def test_hit_test_prefers_front_tile_and_handle(engine):
    back = engine.composite.tiles[0]
    front = engine.composite.tiles[1]
    front.x = 0
    engine.composite.bring_to_front(front.uid)
    assert engine.hit_test(5, 5) == (front.uid, False)
    assert engine.hit_test(224, 224) == (front.uid, True)
    assert engine.hit_test(290, 5) == (back.uid, False)
    assert engine.hit_test(-1, -1) == (None, False)


def test_random_gestures_stay_inside_canvas(engine):
    rng = random.Random(7)
    for _ in range(50):
        index = rng.randrange(3)
        tile = engine.composite.tiles[index]
        aspect = tile.display_width / tile.display_height
        handle = rng.random() < 0.5
        start = (tile.x + tile.display_width, tile.y + tile.display_height)
        engine.pointer_down(tile.uid, *start, handle=handle)
        for _ in range(5):
            engine.hub.move(start[0] + rng.uniform(-800, 800), start[1] + rng.uniform(-400, 400))
        engine.hub.release(0, 0)
        assert engine.hub.listener_count == 0
        assert tile.display_width / tile.display_height == pytest.approx(aspect)
        assert tile.display_width >= 20 and tile.display_height >= 20
        assert contained(engine, tile)

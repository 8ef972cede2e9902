import pytest

from tilestitch.tiles import (
    CHANGE_INSERT,
    CHANGE_MOVE,
    CHANGE_REMOVE,
    CHANGE_REPLACE,
    CHANGE_RESET,
    PlacedTile,
    Tile,
    TileCollection,
)


def make_collection(count: int, **kwargs) -> TileCollection:
    return TileCollection([Tile() for _ in range(count)], **kwargs)


def test_insert_blank_appends_default_tile():
    tiles = make_collection(1)
    added = tiles.insert_blank()
    assert len(tiles) == 2
    assert tiles[1] is added
    assert added.is_blank
    assert (added.display_width, added.display_height) == (300, 225)


def test_insert_blank_refused_when_single_blank_policy():
    tiles = make_collection(1, allow_multiple_blanks=False)
    assert tiles.insert_blank() is None
    assert len(tiles) == 1

    tiles[0].source_id = "abc"
    assert tiles.insert_blank() is not None
    assert len(tiles) == 2


def test_remove_at_shifts_and_signals_empty():
    tiles = make_collection(2)
    second = tiles[1]
    fired = []
    tiles.on_empty(lambda: fired.append(True))

    tiles.remove_at(0)
    assert tiles[0] is second
    assert fired == []

    tiles.remove_at(0)
    assert len(tiles) == 0
    assert fired == [True]


def test_move_to_is_stable_splice():
    tiles = make_collection(4)
    order = [t.uid for t in tiles]
    tiles.move_to(0, 2)
    assert [t.uid for t in tiles] == [order[1], order[2], order[0], order[3]]
    tiles.move_to(3, 0)
    assert [t.uid for t in tiles] == [order[3], order[1], order[2], order[0]]


def test_replace_at_stores_a_copy():
    tiles = make_collection(2)
    replacement = Tile(source_id="img", intrinsic_width=10, intrinsic_height=10,
                       display_width=225, display_height=225)
    stored = tiles.replace_at(1, replacement)
    assert stored is not replacement
    assert tiles[1].source_id == "img"
    replacement.source_id = "changed"
    assert tiles[1].source_id == "img"


def test_out_of_range_indices_raise():
    tiles = make_collection(1)
    with pytest.raises(IndexError):
        tiles.remove_at(3)
    with pytest.raises(IndexError):
        tiles.move_to(0, 5)


def test_listeners_receive_change_kinds():
    tiles = make_collection(2)
    seen = []
    tiles.subscribe(lambda kind, tile: seen.append(kind))
    tiles.insert_blank()
    tiles.move_to(0, 1)
    tiles.replace_at(0, Tile())
    tiles.remove_at(0)
    assert seen == [CHANGE_INSERT, CHANGE_MOVE, CHANGE_REPLACE, CHANGE_REMOVE]


def test_clone_has_value_semantics():
    tiles = make_collection(2)
    copy = tiles.clone()
    assert copy.contents() == tiles.contents()
    assert [t.uid for t in copy] == [t.uid for t in tiles]
    assert all(a is not b for a, b in zip(copy, tiles))


def test_reset_to_blank_keeps_position():
    tile = PlacedTile(source_id="x", intrinsic_width=800, intrinsic_height=600,
                      display_width=300, display_height=225, x=40, y=12)
    tile.reset_to_blank()
    assert tile.is_blank
    assert tile.intrinsic_width is None
    assert (tile.x, tile.y) == (40, 12)


def test_restore_swaps_records_and_keeps_listeners():
    tiles = make_collection(3)
    snapshot = tiles.clone()
    tiles.remove_at(0)
    seen = []
    tiles.subscribe(lambda kind, tile: seen.append(kind))

    tiles.restore(snapshot)

    assert tiles.to_list() == snapshot.to_list()
    assert tiles[0] is not snapshot[0]
    assert seen == [CHANGE_RESET]


def test_assign_content_keeps_identity():
    target, donor = Tile(), Tile(source_id="abc", intrinsic_width=8, intrinsic_height=6,
                                 display_width=80, display_height=60)
    uid = target.uid
    target.assign_content(donor)
    assert target.uid == uid
    assert target.content() == donor.content()

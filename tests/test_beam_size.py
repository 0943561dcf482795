import pytest
import torch

from beam_size import BeamPreconditionError, BeamSize, BeamUnderflowError


@pytest.fixture
def beams(make_enc_out) -> BeamSize:
    beams = BeamSize()
    beams.init(3, make_enc_out([4, 6], line_nums=[10, 11]))
    return beams


def test_init_total(make_enc_out):
    beams = BeamSize()
    for beam_size in (1, 3, 5):
        beams.init(beam_size, make_enc_out([3, 5, 2, 7]))
        assert beams.get_total() == beam_size * 4
        assert beams.size() == len(beams) == 4
        assert beams.get_max_length() == 7
        assert all(element.size == beam_size for element in beams)


def test_init_reuse(beams, make_enc_out):
    beams.decr(0)
    beams.delete_empty()
    beams.init(2, make_enc_out([1], line_nums=[7]))
    assert beams.get_total() == 2
    assert beams.get_max_length() == 1
    assert beams.get_only().get_sentence().line_num == 7
    with pytest.raises(IndexError):
        beams.get_by_line_num(10)


def test_decr_total(beams):
    beams.decr(0)
    beams.decr(1)
    beams.decr_by_line_num(11)
    assert beams.get_total() == 6 - 3
    assert beams.get(0).size == 2
    assert beams.get(1).size == 1


def test_decr_underflow(beams):
    for _ in range(3):
        beams.decr(0)
    total = beams.get_total()
    with pytest.raises(BeamUnderflowError):
        beams.decr(0)
    with pytest.raises(BeamUnderflowError):
        beams.decr_by_line_num(10)
    assert beams.get_total() == total
    assert beams.get(0).size == 0


def test_delete_empty_scenario(beams):
    assert beams.get_total() == 6
    for _ in range(3):
        beams.decr(0)
    assert beams.get(0).size == 0
    assert beams.get_total() == 3

    beams.delete_empty()
    assert beams.size() == 1
    assert beams.get(0).get_sentence().line_num == 11
    assert beams.get_by_line_num(11) is beams.get(0)
    with pytest.raises(IndexError):
        beams.get_by_line_num(10)


def test_delete_empty_preserves_order(make_enc_out):
    beams = BeamSize()
    beams.init(2, make_enc_out([2, 2, 2, 2, 2], line_nums=[4, 3, 2, 1, 0]))
    for ind in (1, 1, 3, 3):
        beams.decr(ind)
    beams.decr(4)
    beams.delete_empty()

    assert [element.get_sentence().line_num for element in beams] == [4, 2, 0]
    assert all(element.size > 0 for element in beams)
    assert beams.get_total() == 5
    for ind, line_num in enumerate([4, 2, 0]):
        assert beams.get_by_line_num(line_num) is beams.get(ind)


def test_get_out_of_range(beams):
    with pytest.raises(IndexError):
        beams.get(2)
    with pytest.raises(IndexError):
        beams.get(-1)
    with pytest.raises(IndexError):
        beams.get_by_line_num(0)
    with pytest.raises(IndexError):
        beams.decr(5)


def test_get_only(beams):
    with pytest.raises(BeamPreconditionError):
        beams.get_only()
    for _ in range(3):
        beams.decr_by_line_num(11)
    beams.delete_empty()
    assert beams.get_only().get_sentence().line_num == 10


def test_get_sentence(beams, make_enc_out):
    assert beams.get_sentence(1).line_num == 11
    assert len(beams.get_sentence(1)) == 6
    assert beams.get(1).get_sentence() is beams.get_sentence(1)


def test_set(beams):
    beams.set(5)
    assert beams.get_total() == 10
    beams.set(0)
    assert beams.get_total() == 0
    beams.delete_empty()
    assert beams.size() == 0


def test_row_mapping(beams):
    beams.decr(0)
    mapping = beams.row_mapping()
    assert mapping.tolist() == [0, 0, 1, 1, 1]
    assert mapping.numel() == beams.get_total()
    assert mapping.dtype == torch.long
    assert beams.row_mapping([1, 1]).tolist() == [0, 1]


def test_debug(beams):
    assert 'total=6' in beams.debug()
    assert 'line=11' in beams.debug(verbosity=2)

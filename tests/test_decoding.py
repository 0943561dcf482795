import logging
import math

import pytest
from conftest import EOS

from decoding import beam_search, greedy_search, length_normalize, no_normalize
from enc_out import EncOut


def max_steps(lengths: list[int], factor: float = 3.0) -> int:
    return math.ceil(factor * max(lengths))


def test_beam_search_nbest(decoder, make_enc_out):
    lengths = [4, 2, 5]
    enc_out = make_enc_out(lengths, line_nums=[7, 3, 9])
    nbest = beam_search(decoder, enc_out, EOS, beam_size=3, n_best=2)

    assert sorted(nbest) == [3, 7, 9]
    for hyps in nbest.values():
        assert 1 <= len(hyps) <= 2
        scores = [hyp.score for hyp in hyps]
        assert scores == sorted(scores, reverse=True)
        for hyp in hyps:
            assert len(hyp.nums) <= max_steps(lengths)
            assert hyp.nums[-1] == EOS or len(hyp.nums) == max_steps(lengths)
            assert EOS not in hyp.nums[:-1]
            assert hyp.alignment is None


def test_step_budget(decoder, make_enc_out):
    enc_out = make_enc_out([2, 3])
    nbest = beam_search(decoder, enc_out, EOS, beam_size=2, max_length=4)
    for hyps in nbest.values():
        assert len(hyps[0].nums) <= 4

    nbest = beam_search(decoder, enc_out, EOS, beam_size=2, max_length_factor=0.5)
    for hyps in nbest.values():
        assert len(hyps[0].nums) <= 2


def test_greedy_matches_width_one(decoder, make_enc_out):
    enc_out = make_enc_out([3, 6])
    greedy = greedy_search(decoder, enc_out, EOS)
    beam = beam_search(decoder, enc_out, EOS, beam_size=1)
    assert greedy.keys() == beam.keys()
    for line_num in greedy:
        assert greedy[line_num][0].nums == beam[line_num][0].nums
        assert greedy[line_num][0].score == pytest.approx(beam[line_num][0].score)


def test_normalize(decoder, make_enc_out):
    enc_out = make_enc_out([3])
    raw = beam_search(decoder, enc_out, EOS, beam_size=1, normalize=no_normalize)[0][0]
    normed = beam_search(decoder, enc_out, EOS, beam_size=1, normalize=length_normalize)[0][0]
    assert raw.nums == normed.nums
    assert normed.score == pytest.approx(raw.score / len(raw.nums))
    assert raw.score <= 0


def test_candidates(decoder, make_enc_out):
    candidates = [EOS, 5, 6, 11]
    enc_out = make_enc_out([4, 3])
    nbest = beam_search(decoder, enc_out, EOS, beam_size=4, n_best=4, candidates=candidates)
    for hyps in nbest.values():
        for hyp in hyps:
            assert set(hyp.nums) <= set(candidates)
    assert decoder.get_filtered_ids() is None


def test_alignment(decoder, make_enc_out):
    lengths = [4, 2]
    enc_out = make_enc_out(lengths)
    nbest = beam_search(decoder, enc_out, EOS, beam_size=2, return_alignment=True)
    for line_num, hyps in nbest.items():
        hyp = hyps[0]
        assert len(hyp.alignment) == len(hyp.nums)
        for weights in hyp.alignment:
            assert weights.size() == (lengths[line_num],)
            assert weights.sum().item() == pytest.approx(1.0, abs=1e-5)


def test_logging(decoder, make_enc_out, caplog):
    logger = logging.getLogger('torch.logger')
    with caplog.at_level(logging.DEBUG, logger='torch.logger'):
        beam_search(decoder, make_enc_out([2]), EOS, beam_size=2, logger=logger)
    assert any('total=2' in record.message for record in caplog.records)
    assert any('Decoded 1 sentences' in record.message for record in caplog.records)


def slice_enc_out(enc_out: EncOut, ind: int) -> EncOut:
    return EncOut(
        enc_out.src_encs[ind : (ind + 1)],
        enc_out.src_mask[ind : (ind + 1)],
        [enc_out.sentences[ind]],
    )


@pytest.mark.parametrize('beam_size', [1, 3, 5])
def test_batched_matches_single(decoder, make_enc_out, beam_size):
    lengths = [3, 6, 2, 5]
    enc_out = make_enc_out(lengths, line_nums=[12, 4, 30, 7])
    budget = max_steps(lengths)
    kwargs = {'max_length': budget, 'max_length_factor': 100.0, 'n_best': beam_size}

    batched = beam_search(decoder, enc_out, EOS, beam_size, **kwargs)
    for ind, sentence in enumerate(enc_out.sentences):
        single = beam_search(decoder, slice_enc_out(enc_out, ind), EOS, beam_size, **kwargs)
        assert [hyp.nums for hyp in batched[sentence.line_num]] == [
            hyp.nums for hyp in single[sentence.line_num]
        ]


def test_beam_wider_than_candidates(decoder, make_enc_out):
    candidates = [EOS, 5]
    enc_out = make_enc_out([4, 2, 3], line_nums=[2, 0, 1])
    nbest = beam_search(decoder, enc_out, EOS, beam_size=5, n_best=5, candidates=candidates)

    assert sorted(nbest) == [0, 1, 2]
    for hyps in nbest.values():
        assert 1 <= len(hyps) <= 2
        for hyp in hyps:
            assert set(hyp.nums) <= set(candidates)
    assert decoder.get_filtered_ids() is None

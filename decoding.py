import logging
import math
from typing import Callable, NamedTuple

import torch
from torch import Tensor

from beam_size import BeamSize
from decoder import Decoder
from enc_out import EncOut

Logger = logging.Logger
Normalizer = Callable[[float, int], float]


class Hypothesis(NamedTuple):
    nums: list[int]
    score: float
    alignment: list[Tensor] | None = None


def length_normalize(score: float, length: int) -> float:
    return score / length


def no_normalize(score: float, length: int) -> float:
    return score


@torch.no_grad()
def beam_search(
    decoder: Decoder,
    enc_out: EncOut,
    eos: int,
    beam_size: int = 4,
    max_length: int = 512,
    max_length_factor: float = 3.0,
    n_best: int = 1,
    normalize: Normalizer = length_normalize,
    candidates: list[int] | None = None,
    return_alignment: bool = False,
    logger: Logger | None = None,
) -> dict[int, list[Hypothesis]]:
    """Decode every sentence of ``enc_out`` and return its n-best list by line number.

    Rows of the per-step tensors are grouped by batch slot in the order kept
    by ``BeamSize``; a slot contributes one row on the first step and
    ``size`` rows afterwards.
    """
    assert beam_size > 0 and n_best > 0
    src_encs, src_mask = enc_out.src_encs, enc_out.src_mask
    device = src_encs.device

    beams = BeamSize()
    beams.init(beam_size, enc_out)
    max_steps = max(1, min(max_length, math.ceil(max_length_factor * beams.get_max_length())))

    counts = [1] * beams.size()
    batch_mapping = beams.row_mapping(counts, device=device)
    state = decoder.empty_state(src_encs, src_mask, batch_mapping=batch_mapping)
    embeddings = decoder.empty_embedding(len(counts))
    scores = torch.zeros(len(counts), dtype=state.dtype, device=device)
    paths: list[list[int]] = [[] for _ in counts]
    alignments: list[list[Tensor]] = [[] for _ in counts]
    finished: dict[int, list[Hypothesis]] = {s.line_num: [] for s in enc_out.sentences}

    prev_ids = decoder.get_filtered_ids()
    if candidates is not None:
        decoder.filter(candidates)
    filtered_ids = decoder.get_filtered_ids()

    step = 0
    try:
        while (step := step + 1) <= max_steps and beams.size() > 0:
            if logger:
                logger.debug(f'[{step}] {beams.debug(verbosity=2)}')
            state, probs = decoder.make_step(state, embeddings, src_encs, src_mask, batch_mapping)
            attention = decoder.get_attention() if return_alignment else None
            frontier = scores.unsqueeze(1) + probs
            width = frontier.size(1)

            reorder: list[int] = []
            words: list[int] = []
            topvs: list[float] = []
            next_alignments: list[list[Tensor]] = []
            offset = 0
            for i, element in enumerate(beams):
                n, sentence = counts[i], element.get_sentence()
                k = min(element.size, n * width)
                # beam wider than the candidate set
                for _ in range(element.size - k):
                    beams.decr(i)

                topv, topi = torch.topk(frontier[offset : (offset + n)].flatten(), k)
                rows = (offset + topi // width).tolist()
                cols = topi % width
                nums = (cols if filtered_ids is None else filtered_ids[cols]).tolist()

                for score, row, num in zip(topv.tolist(), rows, nums):
                    alignment = None
                    if attention is not None:
                        alignment = alignments[row] + [attention[row, : len(sentence)].cpu()]
                    if num == eos or step == max_steps:
                        path = paths[row] + [num]
                        finished[sentence.line_num].append(
                            Hypothesis(path, normalize(score, len(path)), alignment)
                        )
                        beams.decr(i)
                    else:
                        reorder.append(row)
                        words.append(num)
                        topvs.append(score)
                        if alignment is not None:
                            next_alignments.append(alignment)
                offset += n

            beams.delete_empty()
            if beams.size() == 0:
                break

            index = torch.tensor(reorder, dtype=torch.long, device=device)
            state = state.index_select(0, index)
            scores = torch.tensor(topvs, dtype=state.dtype, device=device)
            embeddings = decoder.lookup(words)
            paths = [paths[row] + [num] for row, num in zip(reorder, words)]
            alignments = next_alignments
            counts = [element.size for element in beams]
            batch_mapping = beams.row_mapping(device=device)
            assert len(reorder) == beams.get_total()
    finally:
        if candidates is not None:
            decoder.filter(prev_ids)

    if logger:
        logger.info(f'Decoded {len(finished)} sentences in {min(step, max_steps)} steps')

    return {
        line_num: sorted(hyps, key=lambda hyp: hyp.score, reverse=True)[:n_best]
        for line_num, hyps in finished.items()
    }


def greedy_search(
    decoder: Decoder, enc_out: EncOut, eos: int, max_length: int = 512, **kwargs
) -> dict[int, list[Hypothesis]]:
    return beam_search(decoder, enc_out, eos, 1, max_length, **kwargs)

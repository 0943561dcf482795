import argparse
import logging
import time
from datetime import timedelta

import torch
from sacrebleu.metrics import BLEU, CHRF

from manager import Manager, Tokenizer, load_manager
from translate import translate_lines

Logger = logging.Logger


def comet_score(sources: list[str], candidate: list[str], reference: list[str]) -> float:
    import comet

    samples = [
        {'src': src, 'mt': mt, 'ref': ref} for src, mt, ref in zip(sources, candidate, reference)
    ]
    comet_model = comet.load_from_checkpoint(comet.download_model('Unbabel/wmt22-comet-da'))
    return comet_model.predict(samples)['system_score']


def score_model(
    data_file: str,
    manager: Manager,
    tokenizer: Tokenizer,
    logger: Logger,
    use_comet: bool = False,
    use_tqdm: bool = False,
) -> tuple[tuple, list[str]]:
    sources, reference = [], []
    with open(data_file) as file:
        for line in file:
            src_line, tgt_line = line.rstrip('\n').split('\t')
            sources.append(src_line)
            reference.append(tgt_line)
    assert len(sources) > 0

    start = time.perf_counter()
    candidate = translate_lines(sources, manager, tokenizer, logger, use_tqdm)
    elapsed = timedelta(seconds=(time.perf_counter() - start))

    bleu_score = BLEU().corpus_score(candidate, [reference])
    chrf_score = CHRF().corpus_score(candidate, [reference])

    checkpoint = f'BLEU = {bleu_score.score:.16f}'
    checkpoint += f' | CHRF = {chrf_score.score:.16f}'
    scores: tuple = (bleu_score, chrf_score)
    if use_comet:
        comet = comet_score(sources, candidate, reference)
        checkpoint += f' | COMET = {comet:.16f}'
        scores += (comet,)
    checkpoint += f' | Elapsed Time = {elapsed}'
    logger.info(checkpoint)

    return scores, candidate


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('--data', metavar='FILE', required=True, help='testing data')
    parser.add_argument('--model', metavar='FILE', required=True, help='model file (.pt)')
    parser.add_argument('--log', metavar='FILE', help='log file (.log)')
    parser.add_argument('--comet', action='store_true', help='import comet')
    parser.add_argument('--tqdm', action='store_true', help='import tqdm')
    args, unknown = parser.parse_known_args()

    device = 'cuda' if torch.cuda.is_available() else 'cpu'
    manager = load_manager(args.model, device, unknown)
    tokenizer = Tokenizer(manager.bpe, manager.src_lang, manager.tgt_lang)

    if device == 'cuda' and torch.cuda.get_device_capability()[0] >= 8:
        torch.set_float32_matmul_precision('high')

    logger = logging.getLogger('torch.logger')
    logger.setLevel(logging.INFO)
    logger.addHandler(logging.StreamHandler())
    if args.log:
        logger.addHandler(logging.FileHandler(args.log))

    *_, candidate = score_model(args.data, manager, tokenizer, logger, args.comet, args.tqdm)
    print('', *candidate, sep='\n')


if __name__ == '__main__':
    main()

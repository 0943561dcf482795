import argparse
import logging

import toml
import torch
from tqdm import tqdm

from decoding import beam_search, length_normalize, no_normalize
from manager import Manager, Tokenizer, load_manager

Logger = logging.Logger


def translate_lines(
    lines: list[str],
    manager: Manager,
    tokenizer: Tokenizer,
    logger: Logger | None = None,
    use_tqdm: bool = False,
) -> list[str]:
    model, vocab = manager.model, manager.vocab
    sentences = [manager.make_sentence(i, line, tokenizer) for i, line in enumerate(lines)]
    normalize = length_normalize if manager.normalize else no_normalize

    translations = [''] * len(lines)
    model.eval()
    with torch.no_grad():
        for batch in tqdm(manager.batch_sentences(sentences), disable=(not use_tqdm)):
            enc_out = manager.encode(batch)
            nbest = beam_search(
                manager.decoder,
                enc_out,
                vocab.EOS,
                manager.beam_size,
                manager.max_length,
                manager.max_length_factor,
                manager.n_best,
                normalize=normalize,
                logger=logger,
            )
            for line_num, hyps in nbest.items():
                if manager.n_best == 1:
                    out_words = vocab.denumberize(hyps[0].nums)
                    translations[line_num] = tokenizer.detokenize(out_words)
                    continue
                # moses n-best format
                translations[line_num] = '\n'.join(
                    f'{line_num} ||| {tokenizer.detokenize(vocab.denumberize(hyp.nums))}'
                    f' ||| {hyp.score:.6f}'
                    for hyp in hyps
                )

    return translations


def translate_file(data_file: str, manager: Manager, tokenizer: Tokenizer, **kwargs) -> list[str]:
    with open(data_file) as file:
        return translate_lines([line.rstrip('\n') for line in file], manager, tokenizer, **kwargs)


def translate_string(string: str, manager: Manager, tokenizer: Tokenizer) -> str:
    return translate_lines([string], manager, tokenizer)[0]


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('--model', metavar='FILE', required=True, help='model file (.pt)')
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument('--string', metavar='STRING', help='input string')
    group.add_argument('--file', metavar='FILE', help='input file')
    parser.add_argument('--config', metavar='FILE', help='decoding config file (.toml)')
    parser.add_argument('--log', metavar='FILE', help='log file (.log)')
    parser.add_argument('--debug', action='store_true', help='log beam state every step')
    parser.add_argument('--tqdm', action='store_true', help='import tqdm')
    args, unknown = parser.parse_known_args()

    device = 'cuda' if torch.cuda.is_available() else 'cpu'
    manager = load_manager(args.model, device, unknown)
    if args.config:
        with open(args.config) as config_file:
            for option, value in toml.load(config_file).items():
                manager.__setattr__(option, value)
    tokenizer = Tokenizer(manager.bpe, manager.src_lang, manager.tgt_lang)

    if device == 'cuda' and torch.cuda.get_device_capability()[0] >= 8:
        torch.set_float32_matmul_precision('high')

    logger = logging.getLogger('torch.logger')
    logger.setLevel(logging.DEBUG if args.debug else logging.INFO)
    logger.addHandler(logging.StreamHandler())
    if args.log:
        logger.addHandler(logging.FileHandler(args.log))

    if args.file:
        translations = translate_file(
            args.file, manager, tokenizer, logger=logger, use_tqdm=args.tqdm
        )
        print(*translations, sep='\n')
    elif args.string:
        print(translate_string(args.string, manager, tokenizer))


if __name__ == '__main__':
    main()

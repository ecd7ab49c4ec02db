"""
Command line converter: BPMN files in, CACAO playbook JSON files out.

    bpmn-to-cacao --output-dir out --cacao-spec 2.0 process1.bpmn process2.bpmn

Each input is written to <output-dir>/<input file name>.cacao.json.
A file that fails to convert is logged and skipped; the others are still converted.
"""

import logging
import os
from typing import Tuple

import click

from bpmn_parser import read_bpmn
from cacao_converter import convert_to_cacao
from cacao_models import CACAO_SPEC_VERSION_11, SUPPORTED_SPEC_VERSIONS, playbook_to_json
from conversion_errors import BpmnToCacaoError

logger = logging.getLogger('bpmn_to_cacao')


def output_path_for(input_file: str, output_dir: str) -> str:
    return os.path.join(output_dir, f"{os.path.basename(input_file)}.cacao.json")


def convert_file(input_file: str, output_dir: str, spec_version: str) -> str:
    """Convert one BPMN file and return the path written"""
    with open(input_file, 'rb') as f:
        input_data = f.read()
    bpmn_definitions = read_bpmn(input_data)
    playbook = convert_to_cacao(bpmn_definitions, spec_version)

    output_file = output_path_for(input_file, output_dir)
    with open(output_file, 'w', encoding='utf-8') as f:
        f.write(playbook_to_json(playbook))
    return output_file


@click.command(context_settings={'help_option_names': ['-h', '--help']})
@click.argument('input_files', nargs=-1, type=click.Path(dir_okay=False))
@click.option(
    '--output-dir',
    default='.',
    show_default=True,
    type=click.Path(exists=True, file_okay=False, dir_okay=True, writable=True),
    help='Specify a directory for output',
)
@click.option(
    '--cacao-spec',
    'spec_version',
    default=CACAO_SPEC_VERSION_11,
    show_default=True,
    envvar='CACAO_SPEC_VERSION',
    type=click.Choice(SUPPORTED_SPEC_VERSIONS),
    help='Specify a CACAO spec version',
)
@click.option('-v', '--verbose', is_flag=True, help='Log conversion details')
@click.pass_context
def main(ctx: click.Context, input_files: Tuple[str, ...], output_dir: str, spec_version: str, verbose: bool) -> None:
    """Convert BPMN 2.0 process files to CACAO playbooks."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(levelname)s %(name)s: %(message)s',
    )
    if not input_files:
        raise click.UsageError('No input files were specified')

    failures = 0
    for input_file in input_files:
        logger.info("Processing %s", input_file)
        try:
            output_file = convert_file(input_file, output_dir, spec_version)
        except OSError as e:
            logger.error("could not convert %s: %s", input_file, e)
            failures += 1
            continue
        except BpmnToCacaoError as e:
            logger.error("cacao conversion of %s failed: %s", input_file, e)
            failures += 1
            continue
        logger.info("Wrote output to %s", output_file)

    if failures:
        logger.error("%d of %d files failed to convert", failures, len(input_files))
        ctx.exit(1)


if __name__ == '__main__':
    main()

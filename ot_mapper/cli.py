"""
Command-line interface for ot-mapper.

ot-mapper: CRISPR-Cas9 off-target candidate mapping
"""

import logging
import sys
from dataclasses import replace
from pathlib import Path

import click

from . import __version__
from .config import CONFIG_TEMPLATE, DEFAULT_PAM, PipelineConfig, prepare_sequences
from .exceptions import InvalidInput, OffTargetError


def _setup_logging(verbose: bool):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )


def _fail(error: OffTargetError):
    click.echo(f"Error ({error.stage}): {error}", err=True)
    sys.exit(1)


def _build_config(config_path, **overrides) -> PipelineConfig:
    """Load the YAML config (if any) and apply CLI options that were given."""
    if config_path:
        config = PipelineConfig.from_yaml(Path(config_path))
    else:
        if not overrides.get('spacer'):
            raise InvalidInput("Either --spacer or --config must be provided")
        config = PipelineConfig(spacer=overrides['spacer'])

    given = {key: value for key, value in overrides.items() if value is not None}
    return replace(config, **given)


@click.group()
@click.version_option(version=__version__)
def cli():
    """ot-mapper: CRISPR-Cas9 off-target candidate mapping."""
    pass


def _search_options(func):
    """Options shared by ``run`` and ``search``."""
    options = [
        click.option('--spacer', '-s', type=str,
                     help='Guide spacer sequence (20 nt, without PAM)'),
        click.option('--seed-length', '-l', type=int, default=None,
                     help='Seed length, 8-12 nt (default: 12)'),
        click.option('--pam', type=str, default=None,
                     help=f'PAM pattern (default: {DEFAULT_PAM})'),
        click.option('--genome', '-g', type=str, default=None,
                     help='Genome assembly for GGGenome (default: hg38)'),
        click.option('--full-mismatch', type=click.IntRange(0, 3), default=None,
                     help='Mismatches allowed for the full sequence (default: 3)'),
        click.option('--seed-mismatch', type=click.IntRange(0, 3), default=None,
                     help='Mismatches allowed for the seed sequence (default: 1)'),
        click.option('--output', '-o', 'output_dir', type=click.Path(), default=None,
                     help='Output directory (default: ./analysis)'),
        click.option('--config', '-c', 'config_path', type=click.Path(exists=True),
                     help='YAML configuration file; options given here override it'),
        click.option('--bedtools/--no-bedtools', 'use_bedtools', default=None,
                     help='Use bedtools for overlap detection (default: enabled)'),
        click.option('--workers', '-w', 'max_workers', type=click.IntRange(1, 4), default=None,
                     help='Concurrent GGGenome searches (default: 1)'),
        click.option('--verbose', '-v', is_flag=True, help='Enable debug logging'),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@cli.command()
@_search_options
@click.option('--exon-db', '-e', type=click.Path(),
              help='Exon annotation BED file')
@click.option('--intron-db', '-i', type=click.Path(),
              help='Intron annotation BED file')
@click.option('--primers/--no-primers', 'primer_links', default=None,
              help='Write Primer-BLAST links for annotated candidates (default: enabled)')
def run(spacer, seed_length, pam, genome, full_mismatch, seed_mismatch, output_dir,
        config_path, use_bedtools, max_workers, verbose, exon_db, intron_db, primer_links):
    """
    Run the full off-target analysis: search, filter, overlap, annotate.

    \b
    Example:
      ot-mapper run -s GCTGAAGCACTGCACGCCGT -l 12 \\
        -e data/UCSC_exons_modif_canonical.bed \\
        -i data/UCSC_introns_modif_canonical.bed -o analysis/

    \b
    Example with a config file:
      ot-mapper run --config ot_mapper_config.yaml
    """
    from .pipeline import OffTargetPipeline, RunStatus

    _setup_logging(verbose)

    try:
        config = _build_config(
            config_path,
            spacer=spacer, seed_length=seed_length, pam=pam, genome=genome,
            full_mismatch=full_mismatch, seed_mismatch=seed_mismatch,
            output_dir=output_dir, use_bedtools=use_bedtools,
            max_workers=max_workers, exon_db=exon_db, intron_db=intron_db,
            primer_links=primer_links,
        )
        result = OffTargetPipeline(config).run()
    except OffTargetError as e:
        _fail(e)

    if result.status is RunStatus.NO_CANDIDATES:
        click.echo("\nNo off-target candidates found.")
    else:
        click.echo(f"\nFound {result.n_candidates} off-target candidates")
        if result.annotated is not None:
            click.echo(f"Annotated rows: {len(result.annotated)}")
    for warning in result.warnings:
        click.echo(f"Warning: {warning}", err=True)
    click.echo(f"Results written to: {config.output_dir}")


@cli.command()
@_search_options
def search(spacer, seed_length, pam, genome, full_mismatch, seed_mismatch, output_dir,
           config_path, use_bedtools, max_workers, verbose):
    """
    Detect off-target candidates only (no annotation).

    \b
    Example:
      ot-mapper search -s GCTGAAGCACTGCACGCCGT -l 10 --seed-mismatch 0 -o analysis/
    """
    from .pipeline import OffTargetPipeline, RunStatus

    _setup_logging(verbose)

    try:
        config = _build_config(
            config_path,
            spacer=spacer, seed_length=seed_length, pam=pam, genome=genome,
            full_mismatch=full_mismatch, seed_mismatch=seed_mismatch,
            output_dir=output_dir, use_bedtools=use_bedtools,
            max_workers=max_workers,
        )
        pipeline = OffTargetPipeline(config)
        result = pipeline.write_outputs(pipeline.detect())
    except OffTargetError as e:
        _fail(e)

    if result.status is RunStatus.NO_CANDIDATES:
        click.echo("\nNo off-target candidates found.")
    else:
        click.echo(f"\nFound {result.n_candidates} off-target candidates")
    click.echo(f"Results written to: {config.output_dir}")


@cli.command()
@click.option('--candidates', '-c', type=click.Path(exists=True), required=True,
              help='Candidate TSV or BED file from "ot-mapper search"')
@click.option('--exon-db', '-e', type=click.Path(exists=True), required=True,
              help='Exon annotation BED file')
@click.option('--intron-db', '-i', type=click.Path(exists=True), required=True,
              help='Intron annotation BED file')
@click.option('--output', '-o', type=click.Path(), required=True,
              help='Output TSV path')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
def annotate(candidates, exon_db, intron_db, output, verbose):
    """Annotate existing off-target candidates with exon / intron features."""
    from .integrations.annotation import annotate_candidates, make_annotator
    from .io.output import read_candidates, write_annotated_tsv

    _setup_logging(verbose)

    try:
        table = read_candidates(Path(candidates))
        annotator = make_annotator(Path(exon_db), Path(intron_db))
        annotated = annotate_candidates(table, annotator)
    except OffTargetError as e:
        _fail(e)

    write_annotated_tsv(annotated, Path(output))
    click.echo(f"Annotated {len(annotated)} rows: {output}")


@cli.command()
@click.option('--input', '-i', 'input_path', type=click.Path(exists=True), required=True,
              help='Annotated candidate TSV from "ot-mapper annotate" or "run"')
@click.option('--output', '-o', type=click.Path(), required=True,
              help='Output TSV path')
def primers(input_path, output):
    """Add NCBI Primer-BLAST links (hg38) to annotated candidates."""
    from .io.output import read_annotated_tsv, write_primer_tsv
    from .utils.primer_blast import add_primer_links

    logging.basicConfig(level=logging.INFO)

    try:
        annotated = read_annotated_tsv(Path(input_path))
    except OffTargetError as e:
        _fail(e)

    df = add_primer_links(annotated)
    write_primer_tsv(df, Path(output))
    click.echo(f"Wrote {len(df)} primer links: {output}")


@cli.command()
@click.option('--spacer', '-s', type=str, required=True,
              help='Guide spacer sequence (20 nt, without PAM)')
@click.option('--seed-length', '-l', type=int, default=12,
              help='Seed length, 8-12 nt')
@click.option('--pam', type=str, default=DEFAULT_PAM,
              help='PAM pattern')
def info(spacer, seed_length, pam):
    """
    Display the derived search sequences without running the pipeline.

    \b
    Example:
      ot-mapper info -s GCTGAAGCACTGCACGCCGT -l 12
    """
    try:
        spec = prepare_sequences(spacer, seed_length, pam)
    except InvalidInput as e:
        _fail(e)

    click.echo("\n=== Guide ===")
    click.echo(f"Spacer:        {spec.spacer} ({spec.spacer_length} nt)")
    click.echo(f"PAM:           {spec.pam}")
    click.echo(f"Seed:          {spec.seed} ({spec.seed_length} nt)")
    click.echo("\n=== Search queries ===")
    click.echo(f"Full sequence: {spec.full_sequence}")
    click.echo(f"Seed sequence: {spec.seed_sequence}")


@cli.command()
@click.option('--output', '-o', type=click.Path(), default='ot_mapper_config.yaml',
              help='Output config file path')
def init(output):
    """Generate a template configuration file."""
    with open(output, 'w') as f:
        f.write(CONFIG_TEMPLATE)

    click.echo(f"Generated configuration template: {output}")
    click.echo("\nEdit this file and run:")
    click.echo(f"  ot-mapper run --config {output}")


if __name__ == '__main__':
    cli()

import logging
import os

import click

from . import __version__
from .core import LabAligner
from .labs import generate_labs
from .oto import convert_from_config


def _fail(message, debug):
    click.echo(f"✗ {message}", err=True)
    if debug:
        import traceback
        click.echo(traceback.format_exc(), err=True)
    raise click.Abort()


@click.group()
@click.option('--debug/--no-debug', default=False,
              help='Enable detailed debug output')
@click.version_option(__version__, '--version', '-v', message='%(version)s')
@click.pass_context
def main(ctx, debug):
    """
    Voicebank Forced Aligner - align .lab transcripts and build oto.ini files.

    Example:
        valign infer model/ recordings/
        valign oto oto_config.ini
    """
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument('model_folder', type=click.Path(exists=True, file_okay=False))
@click.argument('wav_folder', type=click.Path(exists=True, file_okay=False))
@click.option('--out', 'out_folder', type=click.Path(file_okay=False),
              help='Output folder (default: WAV_FOLDER); TextGrids go to OUT/TextGrid')
@click.option('--lab-folder', type=click.Path(exists=True, file_okay=False),
              help='Folder with the .lab files if they are not next to the wavs')
@click.option('--g2p', default='dictionary', type=click.Choice(['dictionary', 'phoneme']),
              help='How transcripts are turned into phonemes')
@click.option('--dictionary', type=click.Path(exists=True, dir_okay=False),
              help='Pronunciation dictionary (default: the one vocab.json names for --language)')
@click.option('--language', default='zh', help='Language key of the model')
@click.option('--non-lexical-phonemes', default='AP',
              help='Comma separated non-lexical labels to detect')
@click.option('--pad-times', default=1, type=click.IntRange(min=1),
              help='Number of padded passes used for consensus')
@click.option('--pad-length', default=5.0, type=float,
              help='Largest left padding in seconds')
@click.option('--workers', type=click.IntRange(min=1),
              help='Threads for the padded passes')
@click.pass_context
def infer(ctx, model_folder, wav_folder, out_folder, lab_folder, g2p, dictionary, language,
          non_lexical_phonemes, pad_times, pad_length, workers):
    """
    Align every transcript in WAV_FOLDER with the model in MODEL_FOLDER.
    """
    debug = ctx.obj.get("debug", False)
    out_folder = out_folder or wav_folder

    if debug:
        click.echo("🚀 Voicebank Forced Aligner")
        click.echo(f"🎯 Model: {model_folder}")
        click.echo(f"📁 Audio: {wav_folder}")
        click.echo(f"💾 Output: {os.path.join(out_folder, 'TextGrid')}")
        click.echo(f"🏷️  Language: {language} ({g2p})")
        click.echo("-" * 50)

    try:
        aligner = LabAligner(
            model_folder=model_folder,
            g2p=g2p,
            language=language,
            dictionary=dictionary,
            non_lexical_phonemes=non_lexical_phonemes,
            pad_times=pad_times,
            pad_length=pad_length,
            workers=workers,
        )
        if lab_folder:
            aligner.get_dataset_from_lab_folder(wav_folder, lab_folder)
        else:
            aligner.get_dataset(wav_folder)
        if not aligner.dataset:
            _fail(f"No .wav/.lab pairs found in {wav_folder}", debug)

        def progress(done, total, name):
            if debug:
                click.echo(f"🎵 [{done}/{total}] {name}")

        aligner.infer(progress_callback=progress)
        written = aligner.export(out_folder)
    except KeyboardInterrupt:
        click.echo("\n⏹️  Processing interrupted by user", err=True)
        raise click.Abort()
    except click.Abort:
        raise
    except Exception as e:
        _fail(f"Error during alignment: {e}", debug)

    skipped = len(aligner.dataset) - len(written)
    click.echo(f"✅ {len(written)} TextGrids written to {os.path.join(out_folder, 'TextGrid')}")
    if skipped:
        click.echo(f"⚠️  {skipped} recordings skipped (no consensus between padded passes)")


@main.command(name='make-lab')
@click.argument('wav_folder', type=click.Path(exists=True, file_okay=False))
@click.option('--out', 'out_folder', type=click.Path(file_okay=False),
              help='Where to write the .lab files (default: WAV_FOLDER)')
@click.pass_context
def make_lab(ctx, wav_folder, out_folder):
    """
    Write a .lab for every .wav in WAV_FOLDER from its file name ("ka_ki.wav" -> "ka ki").
    """
    debug = ctx.obj.get("debug", False)
    try:
        count = generate_labs(wav_folder, out_folder)
    except OSError as e:
        _fail(f"Could not create labs: {e}", debug)
    click.echo(f"✅ Created {count} .lab files in {out_folder or wav_folder}")


@main.command()
@click.argument('config_path', type=click.Path(exists=True, dir_okay=False))
@click.pass_context
def oto(ctx, config_path):
    """
    Build oto.ini from aligned TextGrids as described by CONFIG_PATH.
    """
    debug = ctx.obj.get("debug", False)
    try:
        out_path = convert_from_config(config_path)
    except (OSError, KeyError, ValueError) as e:
        _fail(f"Error during oto conversion: {e}", debug)
    click.echo(f"✅ oto written to {out_path}")


if __name__ == '__main__':
    main()

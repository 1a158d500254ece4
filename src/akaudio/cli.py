"""CLI entry point for akaudio."""

from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from akaudio import __version__
from akaudio.cache import clear_index, get_index_info
from akaudio.config import AkaudioConfig, ConfigError, get_default_config, load_config
from akaudio.doctor import check_all_dependencies
from akaudio.errors import AkaudioError
from akaudio.info import analyze_container
from akaudio.logger import ExtractLogger, LogConfig, ProgressDisplay, VerboseLevel
from akaudio.pipeline import (
    ExtractionPipeline,
    PipelineConfig,
    PipelinePhase,
    PipelineProgress,
)
from akaudio.types import ExitCode

app = typer.Typer(help="Wwiseの .pck / .bnk / .wem から音声を抽出するCLIツール")
console = Console()


def _format_size(size_bytes: int) -> str:
    """バイト数を人間が読みやすい形式に変換する"""
    if size_bytes < 1024:
        return f"{size_bytes} B"
    elif size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    elif size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    else:
        return f"{size_bytes / (1024 * 1024 * 1024):.1f} GB"


def _merge_formats(
    config: AkaudioConfig, wav: bool | None, ogg: bool | None
) -> tuple[str, ...]:
    """設定ファイルの出力フォーマットにCLIオプションを反映する

    None は設定ファイルの値をそのまま使う。
    """
    formats = list(config.output.formats)
    for name, enabled in (("wav", wav), ("ogg", ogg)):
        if enabled:
            formats.append(name)
        elif enabled is False:
            formats = [fmt for fmt in formats if fmt != name]
    return tuple(dict.fromkeys(formats))


def _pick(option: bool | None, configured: bool) -> bool:
    """CLIで明示された値を設定ファイルの値より優先する"""
    return configured if option is None else option


@app.command()
def extract(
    inputs: Annotated[list[Path], typer.Argument(help="入力ファイルまたはディレクトリ")],
    output: Annotated[Path, typer.Option("-o", "--output", help="出力ディレクトリ")],
    wav: Annotated[bool | None, typer.Option("--wav/--no-wav", help="WAVも出力する")] = None,
    ogg: Annotated[bool | None, typer.Option("--ogg/--no-ogg", help="OGGも出力する")] = None,
    split_output: Annotated[
        bool | None,
        typer.Option(
            "--split-output/--no-split-output", help="入力ファイルごとにフォルダを分ける"
        ),
    ] = None,
    banked_output: Annotated[
        bool | None,
        typer.Option("--banked-output/--no-banked-output", help="バンクIDごとにフォルダを分ける"),
    ] = None,
    no_lang: Annotated[
        bool | None,
        typer.Option(
            "--no-lang/--with-lang", help="言語が1つの場合は言語フォルダを省略する"
        ),
    ] = None,
    legacy: Annotated[
        bool | None, typer.Option("--legacy/--no-legacy", help="10進IDで命名する")
    ] = None,
    known_filenames: Annotated[
        Path | None, typer.Option(help="Known_Filenames.tsv のパス")
    ] = None,
    known_events: Annotated[Path | None, typer.Option(help="Known_Events.tsv のパス")] = None,
    index_file: Annotated[
        Path | None, typer.Option(help="フィンガープリントインデックスのパス")
    ] = None,
    workers: Annotated[int | None, typer.Option(min=1, help="ワーカー数")] = None,
    config_file: Annotated[Path | None, typer.Option("--config", help="設定ファイル")] = None,
    verbose: Annotated[int, typer.Option("-v", "--verbose", count=True, help="詳細ログ出力")] = 0,
    quiet: Annotated[bool, typer.Option("-q", "--quiet", help="エラーのみ出力")] = False,
    log_file: Annotated[Path | None, typer.Option(help="ログファイル出力先")] = None,
) -> None:
    """音声アセットを抽出する"""
    try:
        config = load_config(config_file) if config_file else get_default_config()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(ExitCode.INVALID_INPUT) from e

    base = PipelineConfig.from_config(tuple(inputs), output, config)
    layout = base.layout
    pipeline_config = PipelineConfig(
        inputs=base.inputs,
        output_dir=base.output_dir,
        formats=_merge_formats(config, wav, ogg),
        layout=type(layout)(
            split_output=_pick(split_output, layout.split_output),
            banked_output=_pick(banked_output, layout.banked_output),
            no_lang=_pick(no_lang, layout.no_lang),
            legacy_names=_pick(legacy, layout.legacy_names),
        ),
        known_filenames=known_filenames or base.known_filenames,
        known_events=known_events or base.known_events,
        index_file=index_file or base.index_file,
        workers=workers or base.workers,
        vgmstream_path=base.vgmstream_path,
        ffmpeg_path=base.ffmpeg_path,
        vgmstream_timeout=base.vgmstream_timeout,
        ffmpeg_timeout=base.ffmpeg_timeout,
        retry=base.retry,
    )

    level = VerboseLevel.QUIET if quiet else VerboseLevel(min(verbose, VerboseLevel.DEBUG))
    with ExtractLogger(LogConfig(verbose_level=level, log_file=log_file)) as logger:
        pipeline = ExtractionPipeline(pipeline_config, logger=logger)

        errors = pipeline.validate()
        if errors:
            for error in errors:
                console.print(f"[red]Error: {error}[/red]")
            raise typer.Exit(ExitCode.ERROR)

        display: ProgressDisplay | None = (
            logger.create_progress() if level == VerboseLevel.NORMAL else None
        )

        def progress_callback(progress: PipelineProgress) -> None:
            if display is None or progress.phase is not PipelinePhase.EXTRACT:
                return
            if progress.current == 0:
                display.start(progress.phase, progress.total)
                return
            display.update(progress.current, progress.message)
            if progress.current == progress.total:
                display.finish(True)

        try:
            result = pipeline.run(progress_callback=progress_callback)
        except KeyboardInterrupt:
            console.print("\n[yellow]中断しました（インデックスは保存済み）[/yellow]")
            raise typer.Exit(ExitCode.ERROR) from None

        logger.log_summary(result.statistics)

    if result.success:
        raise typer.Exit(ExitCode.SUCCESS)

    console.print(f"[red]抽出失敗: {result.error_message}[/red]")
    for report in result.failed_files:
        if report.error:
            console.print(f"  [red]{report.source}[/red]: {report.error}")
    raise typer.Exit(ExitCode.ERROR)


@app.command()
def doctor(
    require_transcoders: Annotated[
        bool, typer.Option("--transcode", help="vgmstream-cli と FFmpeg を必須として扱う")
    ] = False,
    config_file: Annotated[Path | None, typer.Option("--config", help="設定ファイル")] = None,
) -> None:
    """依存ツールをチェックする

    設定ファイルを指定した場合は tools.vgmstream / tools.ffmpeg のパスをチェックする。
    """
    console = Console()
    try:
        config = load_config(config_file) if config_file else get_default_config()
    except ConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(ExitCode.INVALID_INPUT) from e

    results = check_all_dependencies(
        vgmstream=config.tools.vgmstream,
        ffmpeg=config.tools.ffmpeg,
        require_transcoders=require_transcoders,
    )

    table = Table(title="依存ツールチェック結果")
    table.add_column("ステータス", justify="center")
    table.add_column("ツール名", justify="left")
    table.add_column("バージョン", justify="left")
    table.add_column("必須", justify="center")
    table.add_column("メッセージ", justify="left")

    has_missing_required = False

    for result in results:
        if result.found:
            status = "[green]✓[/green]"
        else:
            status = "[red]✗[/red]"
            if result.required:
                has_missing_required = True

        required_str = "[yellow]必須[/yellow]" if result.required else "オプション"
        version_str = result.version or "-"
        message_str = result.message or ""

        table.add_row(status, result.name, version_str, required_str, message_str)

    console.print(table)

    if has_missing_required:
        console.print("\n[red]エラー: 必須ツールが不足しています[/red]")
        raise typer.Exit(ExitCode.DEPENDENCY_ERROR)
    else:
        console.print("\n[green]すべての必須ツールが利用可能です[/green]")
        raise typer.Exit(0)


@app.command()
def info(
    input_path: Annotated[Path, typer.Argument(help="解析対象ファイル")],
) -> None:
    """コンテナの概要を表示する"""
    if not input_path.exists():
        console.print(f"[red]Error: パスが見つかりません: {input_path}[/red]")
        raise typer.Exit(1)

    if input_path.is_dir():
        console.print(f"[red]Error: ファイルを指定してください: {input_path}[/red]")
        raise typer.Exit(1)

    try:
        container_info = analyze_container(input_path)
    except AkaudioError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from e

    table = Table(title="Container Info")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("File", input_path.name)
    table.add_row("Type", container_info.container.value)
    table.add_row("Size", _format_size(container_info.size_bytes))

    package = container_info.package
    if package is not None:
        table.add_section()
        table.add_row("Version", str(package.version))
        table.add_row("Languages", str(len(package.languages)))
        for language_id, name in package.languages:
            table.add_row(f"  {language_id}", name.upper())
        table.add_section()
        table.add_row("Banks", str(package.bank_count))
        table.add_row("Streams", str(package.stream_count))
        table.add_row("Externals", str(package.external_count))

    bank = container_info.bank
    if bank is not None:
        table.add_section()
        table.add_row("Version", str(bank.version))
        table.add_row("Bank ID", str(bank.bank_id))
        table.add_row("Language ID", str(bank.language_id))
        table.add_row("Project ID", str(bank.project_id))
        table.add_section()
        for chunk in bank.chunks:
            mark = "" if chunk.parsed else " [dim](skipped)[/dim]"
            table.add_row(f"  {chunk.signature}", f"{_format_size(chunk.size)}{mark}")
        table.add_section()
        table.add_row("Assets", str(bank.asset_count))
        table.add_row("HIRC Sections", str(bank.hirc_section_count))

    console.print(table)
    raise typer.Exit(0)


# index サブコマンドグループ
index_app = typer.Typer(help="フィンガープリントインデックス管理")
app.add_typer(index_app, name="index")


@index_app.command("clean")
def index_clean(
    force: Annotated[bool, typer.Option("-f", "--force", help="確認なしで削除")] = False,
) -> None:
    """すべてのインデックスを削除する"""
    console = Console()

    if not force:
        confirmed = typer.confirm("すべてのインデックスを削除しますか?")
        if not confirmed:
            console.print("[yellow]キャンセルしました[/yellow]")
            raise typer.Exit(0)

    clear_index()
    console.print("[green]すべてのインデックスを削除しました[/green]")
    raise typer.Exit(0)


@index_app.command("info")
def index_info() -> None:
    """インデックス情報を表示する"""
    console = Console()
    info = get_index_info()

    table = Table(title="インデックス情報", show_header=False)
    table.add_column("項目", style="cyan")
    table.add_column("値", style="white")

    table.add_row("ディレクトリ", str(info.directory))
    table.add_row("サイズ", _format_size(info.size_bytes))
    if info.index_count:
        table.add_row("インデックス数", str(info.index_count))
    else:
        table.add_row("インデックス", "[dim]なし[/dim]")

    console.print(Panel(table, border_style="blue"))
    raise typer.Exit(0)


def version_callback(value: bool) -> None:
    """バージョン表示コールバック"""
    if value:
        typer.echo(f"akaudio {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="バージョンを表示する",
        ),
    ] = False,
) -> None:
    """akaudio CLI - Wwiseの音声コンテナから音声を抽出"""
    pass

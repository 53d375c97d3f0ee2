"""CLI interface for anonymizing image files."""

import typer
import time
import logging
from pathlib import Path
from typing import Optional, List, Dict, Any
from dotenv import find_dotenv, load_dotenv
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from .config import Config, ServiceConfig, load_config
from .imaging import ImageReadError, load_image, read_image_bytes, save_image
from .logging_utils import RedactionAuditor, setup_logging
from .pipeline import RedactionPipeline
from .redact import RedactionMethod
from .semantic import GeminiSensitivityClassifier
from .vision import DetectionError, VisionClient


app = typer.Typer(help="Image Anonymizer - mask sensitive text and faces in images")
console = Console()


def parse_mask_texts(mask_texts: Optional[str]) -> List[str]:
    """Split a comma-separated list of literal strings, dropping blanks."""
    if not mask_texts:
        return []
    return [text.strip() for text in mask_texts.split(',') if text.strip()]


class ImageProcessor:
    """Runs detect -> classify -> redact -> save for single images."""

    def __init__(
        self,
        config: Config,
        vision: Optional[VisionClient] = None,
        semantic: Optional[GeminiSensitivityClassifier] = None,
        auditor: Optional[RedactionAuditor] = None
    ):
        """Initialize image processor.

        Args:
            config: Configuration object (service settings already resolved)
            vision: Detection client; built from config when omitted
            semantic: Semantic classifier; built from config when omitted
            auditor: Optional redaction audit logger
        """
        self.config = config
        self.vision = vision or VisionClient(config.service)
        if semantic is None and config.classification.use_semantic_classifier:
            semantic = GeminiSensitivityClassifier(
                config.service, config.classification.criteria()
            )
        self.semantic = semantic
        self.auditor = auditor
        self.pipeline = RedactionPipeline(config, semantic=semantic, auditor=auditor)

    def close(self) -> None:
        """Release HTTP clients."""
        self.vision.close()
        if self.semantic is not None:
            self.semantic.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def process(
        self,
        input_path: Path,
        output_dir: Path,
        mask_texts: Optional[List[str]] = None,
        mask_text: bool = True,
        mask_faces: bool = False
    ) -> Dict[str, Any]:
        """Anonymize one image and write `masked_<name>` into `output_dir`.

        Returns:
            Processing statistics dictionary
        """
        start_time = time.time()
        input_path = Path(input_path)
        logging.info(f"Reading input image: {input_path}")

        image = load_image(input_path)
        image_bytes = read_image_bytes(input_path)
        output_path = Path(output_dir) / f"masked_{input_path.name}"

        stats: Dict[str, Any] = {
            'input_file': str(input_path),
            'output_file': str(output_path),
            'width': int(image.shape[1]),
            'height': int(image.shape[0]),
            'text_annotations': 0,
            'text_regions_redacted': 0,
            'faces_detected': 0,
            'faces_redacted': 0,
        }

        if mask_text:
            annotations = self.vision.detect_text(image_bytes)
            stats['text_annotations'] = len(annotations)
            stats['text_regions_redacted'] = self.pipeline.redact(
                image, annotations, mask_texts or [], image_name=input_path.name
            )

        if mask_faces:
            faces = self.vision.detect_faces(image_bytes)
            stats['faces_detected'] = len(faces)
            stats['faces_redacted'] = self.pipeline.redact_faces(
                image, faces, image_name=input_path.name
            )

        save_image(output_path, image)
        stats['processing_time'] = time.time() - start_time

        if self.auditor is not None:
            self.auditor.log_summary(input_path.name, {
                key: stats[key] for key in (
                    'text_annotations', 'text_regions_redacted', 'faces_detected', 'faces_redacted'
                )
            })

        return stats


def load_environment() -> Optional[Path]:
    """Load a `.env` file from the working directory (or a parent) into os.environ.

    Variables already set in the process environment are not overridden.
    """
    dotenv_path = find_dotenv(usecwd=True)
    if dotenv_path and load_dotenv(dotenv_path):
        logging.info("Loaded environment from .env file")
        return Path(dotenv_path)
    logging.info("No .env file found, using environment variables")
    return None


def load_and_validate_config(config_path: Path, api_key: Optional[str] = None) -> Config:
    """Load configuration file and resolve service credentials."""
    try:
        config = load_config(config_path)
    except ValueError as e:
        raise typer.BadParameter(f"Invalid configuration file: {e}")

    load_environment()
    service = ServiceConfig.from_env(config.service)
    if api_key:
        service = service.model_copy(update={'gcp_api_key': api_key})
    if not service.gcp_api_key:
        raise typer.BadParameter(
            "GCP API key is not set: use --api-key, the config file or GCP_API_KEY"
        )

    return config.model_copy(update={'service': service})


@app.command()
def redact(
    input_file: Path = typer.Argument(..., help="Input image file path"),
    output_dir: Path = typer.Option(Path("./output"), "--output-dir", "-o", help="Directory for the masked image"),
    mask_texts: Optional[str] = typer.Option(None, "--mask-texts", "-m", help="Comma-separated literal strings to always mask"),
    api_key: Optional[str] = typer.Option(None, "--api-key", "-a", help="Google Cloud API key (defaults to GCP_API_KEY)"),
    text: bool = typer.Option(True, "--text/--no-text", help="Mask sensitive text"),
    faces: bool = typer.Option(False, "--faces/--no-faces", help="Mask faces"),
    face_method: Optional[str] = typer.Option(None, "--face-method", help="Face redaction method (pixelate, solid)"),
    no_semantic: bool = typer.Option(False, "--no-semantic", help="Skip the Gemini check and use local rules only"),
    config_file: Path = typer.Option("default.yaml", "--config", "-c", help="Configuration file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose logging"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress output except errors"),
    no_log_text: bool = typer.Option(False, "--no-log-text", help="Keep detected text out of the audit log"),
):
    """Mask sensitive text (and optionally faces) in an image.

    Examples:

        # Basic usage
        image-anonymizer redact screenshot.png

        # Always mask two literal values and blur faces
        image-anonymizer redact photo.jpg -m "john@example.com,ACME-1234" --faces
    """
    log_level = logging.ERROR if quiet else (logging.DEBUG if verbose else logging.INFO)
    setup_logging(level=log_level)

    processor: Optional[ImageProcessor] = None
    auditor: Optional[RedactionAuditor] = None
    try:
        if not input_file.is_file():
            raise typer.BadParameter(f"Input file does not exist: {input_file}")

        config = load_and_validate_config(config_file, api_key)

        if face_method:
            methods = [method.value for method in RedactionMethod]
            if face_method not in methods:
                raise typer.BadParameter(f"Face method must be one of: {', '.join(methods)}")
            config = config.merge_overrides({'redaction': {'face_method': face_method}})
        if no_semantic:
            config = config.merge_overrides({'classification': {'use_semantic_classifier': False}})

        if verbose or quiet:
            config = config.merge_overrides({'logging': {'log_level': 'ERROR' if quiet else 'DEBUG'}})

        auditor = setup_logging(config.logging, no_log_text=no_log_text)

        processor = ImageProcessor(config, auditor=auditor)
        stats = processor.process(
            input_file, output_dir, parse_mask_texts(mask_texts),
            mask_text=text, mask_faces=faces
        )

        if not quiet:
            table = Table(title="Anonymization Results")
            table.add_column("Metric", style="cyan")
            table.add_column("Value", style="green")

            table.add_row("Input File", stats['input_file'])
            table.add_row("Output File", stats['output_file'])
            table.add_row("Image Size", f"{stats['width']}x{stats['height']}")
            table.add_row("Text Annotations", str(stats['text_annotations']))
            table.add_row("Text Regions Masked", str(stats['text_regions_redacted']))
            if faces:
                table.add_row("Faces Detected", str(stats['faces_detected']))
                table.add_row("Faces Masked", str(stats['faces_redacted']))
            table.add_row("Processing Time", f"{stats['processing_time']:.2f} seconds")

            console.print(table)
            console.print("[bold green]✓ Image processing completed successfully![/bold green]")

    except typer.BadParameter as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except DetectionError as e:
        console.print(f"[red]Detection failed ({e.feature}): {e}[/red]")
        raise typer.Exit(1)
    except ImageReadError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Processing interrupted by user[/yellow]")
        raise typer.Exit(130)
    except Exception as e:
        console.print(f"[red]Unexpected error: {e}[/red]")
        if verbose:
            console.print_exception()
        raise typer.Exit(1)
    finally:
        if processor is not None:
            processor.close()
        if auditor is not None:
            auditor.close()


@app.command()
def config_init(
    output_file: Path = typer.Argument(Path("default.yaml"), help="Where to write the configuration"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing file"),
):
    """Write the default configuration to a YAML file."""
    if output_file.exists() and not force:
        console.print(f"[red]Error: {output_file} already exists (use --force to overwrite)[/red]")
        raise typer.Exit(1)

    Config().to_yaml(output_file)
    console.print(f"[green]Wrote default configuration to {output_file}[/green]")


@app.command()
def config_show(
    config_file: Path = typer.Option("default.yaml", "--config", "-c", help="Configuration file path"),
):
    """Show the effective configuration (API key hidden)."""
    try:
        config = load_config(config_file)
    except ValueError as e:
        console.print(f"[red]Invalid configuration file: {e}[/red]")
        raise typer.Exit(1)

    load_environment()
    service = ServiceConfig.from_env(config.service)

    table = Table(title="Effective Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("API Key", "set" if service.gcp_api_key else "[red]not set[/red]")
    table.add_row("Gemini Model", service.gemini_model)
    table.add_row("Request Timeout", f"{service.request_timeout_s:.1f} s")
    table.add_row("Criteria", ", ".join(config.classification.criteria().enabled()))
    table.add_row("Semantic Check", str(config.classification.use_semantic_classifier))
    table.add_row("Text Method", config.redaction.text_method)
    table.add_row("Face Method", config.redaction.face_method)
    table.add_row("Block Size", str(config.redaction.pixelate_block_size))

    console.print(Panel.fit("[bold blue]Image Anonymizer[/bold blue]", border_style="blue"))
    console.print(table)


if __name__ == "__main__":
    app()

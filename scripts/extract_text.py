"""Run the capture-to-text pipeline on an image file.

    python scripts/extract_text.py page.jpg --rotate 1 --tool summarize --pdf out.pdf
"""
import argparse
import asyncio
import mimetypes
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import get_config
from snapnotes.models import StudyKind
from snapnotes.services.ai_service import LocalStudyTools, RemoteStudyTools
from snapnotes.services.ocr_service import RecognitionPipeline, TesseractEngine, configure_tesseract
from snapnotes.workflow import CaptureWorkflow


def print_progress(pct: int) -> None:
    print(f"\rRecognizing... {pct:3d}%", end="", flush=True)


async def run(args) -> int:
    cfg = get_config()
    configure_tesseract(cfg.TESSERACT_CMD)
    generate = RemoteStudyTools.from_config(cfg) if args.remote else LocalStudyTools(cfg)

    wf = CaptureWorkflow(
        generate,
        pipeline=RecognitionPipeline(TesseractEngine(), default_language=cfg.OCR_LANGUAGE),
        notify=lambda n: print(f"\n[{n.variant}] {n.title}: {n.description}"),
        export_prefix=cfg.EXPORT_PREFIX,
    )

    media_type = mimetypes.guess_type(args.image)[0] or "application/octet-stream"
    with open(args.image, "rb") as f:
        if not wf.load_file(f.read(), media_type, os.path.basename(args.image)):
            return 1

    for _ in range(args.rotate % 4):
        wf.rotate()
    wf.set_scale(args.scale)

    # Poll the workflow's progress while recognition runs.
    task = asyncio.create_task(wf.process(args.language))
    while not task.done():
        if wf.progress is not None:
            print_progress(wf.progress)
        await asyncio.sleep(0.1)
    text = task.result()
    print()
    if text is None:
        return 1
    print(text)

    if args.tool:
        content = await wf.generate(StudyKind(args.tool))
        if content is None:
            return 1
        print(f"\n--- {args.tool} ---\n{content}")

    if args.question:
        answer = await wf.ask(args.question)
        if answer is None:
            return 1
        print(f"\nQ: {args.question}\nA: {answer}")

    for path, export in ((args.txt, wf.export_text), (args.pdf, wf.export_pdf)):
        if not path:
            continue
        out = export()
        with open(path, "wb") as f:
            f.write(out.data)
        print(f"Saved {path}")
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Extract text from an image and build study material")
    parser.add_argument("image")
    parser.add_argument("--rotate", type=int, default=0, help="quarter turns clockwise")
    parser.add_argument("--scale", type=float, default=1.0)
    parser.add_argument("--language", default=None)
    parser.add_argument("--tool", choices=[k.value for k in StudyKind])
    parser.add_argument("--question")
    parser.add_argument("--remote", action="store_true", help="use STUDY_TOOLS_URL instead of calling the provider")
    parser.add_argument("--txt")
    parser.add_argument("--pdf")
    args = parser.parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()

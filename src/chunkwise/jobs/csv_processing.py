"""The ``csvProcessingJob``: input CSV -> PersonProcessor -> output CSV."""

from __future__ import annotations

from chunkwise.core.config import AppSettings
from chunkwise.core.types import JobParameters
from chunkwise.engine.definitions import JobDefinition, StepDefinition
from chunkwise.items.csv_reader import PersonCsvReader
from chunkwise.items.csv_writer import PersonCsvWriter
from chunkwise.items.person_processor import PersonProcessor

JOB_NAME = "csvProcessingJob"
STEP_NAME = "csvProcessingStep"

# Optional job parameters overriding the configured file paths.
INPUT_FILE_PARAM = "input.file"
OUTPUT_FILE_PARAM = "output.file"


def build_job(settings: AppSettings | None = None,
              processor: PersonProcessor | None = None) -> JobDefinition:
    """Build the CSV processing job from ``settings.batch``."""
    if settings is None:
        settings = AppSettings()
    batch = settings.batch

    def reader(params: JobParameters) -> PersonCsvReader:
        return PersonCsvReader(str(params.get(INPUT_FILE_PARAM, batch.input_file)))

    def writer(params: JobParameters) -> PersonCsvWriter:
        return PersonCsvWriter(str(params.get(OUTPUT_FILE_PARAM, batch.output_file)))

    step = StepDefinition(
        name=STEP_NAME,
        reader=reader,
        processor=processor or PersonProcessor(),
        writer=writer,
        chunk_size=batch.chunk_size,
    )
    return JobDefinition(name=JOB_NAME, steps=(step,))

"""Question import from CSV uploads, and results export back to CSV.

Expected header (comma-delimited, no quoting):

    Question,Option A,Option B,Option C,Option D,Correct Answer

One data row per question; ``Correct Answer`` is a single letter A-D in any
case.
"""

import csv
import io
import uuid
from dataclasses import dataclass, field
from typing import Dict, List

from brainplay.errors import CSVValidationError
from brainplay.models import ANSWER_LETTERS, Question

REQUIRED_COLUMNS = ['Question', 'Option A', 'Option B', 'Option C', 'Option D', 'Correct Answer']


@dataclass
class CSVValidationResult:
    valid: bool
    errors: List[str] = field(default_factory=list)


def parse_csv(text: str) -> List[Dict[str, str]]:
    lines = (text or '').replace('\r\n', '\n').replace('\r', '\n').split('\n')
    while lines and not lines[0].strip():
        lines.pop(0)
    if len(lines) < 2:
        return []

    headers = [h.strip() for h in lines[0].split(',')]
    rows = []
    for line in lines[1:]:
        line = line.strip()
        if not line:
            continue
        values = line.split(',')
        rows.append({headers[i]: values[i].strip() for i in range(min(len(values), len(headers)))})
    return rows


def validate_csv(rows: List[Dict[str, str]]) -> CSVValidationResult:
    errors = []
    if not rows:
        return CSVValidationResult(valid=False, errors=['CSV file is empty'])

    first_row = rows[0]
    for column in REQUIRED_COLUMNS:
        if column not in first_row:
            errors.append(f'Missing required column: {column}')

    for idx, row in enumerate(rows, start=1):
        if not (row.get('Question') or '').strip():
            errors.append(f'Row {idx}: Question is empty')
        if (row.get('Correct Answer') or '').upper() not in ANSWER_LETTERS:
            errors.append(f'Row {idx}: Correct Answer must be A, B, C, or D')

    return CSVValidationResult(valid=not errors, errors=errors)


def convert_rows_to_questions(rows: List[Dict[str, str]]) -> List[Question]:
    """Map validated rows to questions. Call only after validate_csv passes."""
    return [
        Question(
            id=f'q_{idx}_{uuid.uuid4().hex}',
            text=row['Question'],
            optionA=row['Option A'],
            optionB=row['Option B'],
            optionC=row['Option C'],
            optionD=row['Option D'],
            correctAnswer=row['Correct Answer'].upper(),
        )
        for idx, row in enumerate(rows)
    ]


def load_questions(text: str) -> List[Question]:
    rows = parse_csv(text)
    result = validate_csv(rows)
    if not result.valid:
        raise CSVValidationError(result.errors)
    return convert_rows_to_questions(rows)


def results_to_csv(records: List[dict]) -> str:
    if not records:
        return ''
    headers = list(records[0].keys())
    out = io.StringIO()
    writer = csv.writer(out, lineterminator='\n')
    writer.writerow(headers)
    for record in records:
        writer.writerow(['' if record.get(h) is None else record.get(h) for h in headers])
    return out.getvalue().rstrip('\n')

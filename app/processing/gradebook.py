"""CSV layouts for the gradebook and for form responses."""
import csv
import io
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

EXPORT_HEADER = ["Class", "Section", "Course", "Student", "Grade", "Feedback", "Exam ID", "Exam Title", "Created At"]
IMPORT_COLUMNS = "Class,Student,Grade,Feedback,ExamID"


@dataclass
class ExportRow:
    class_name: str
    section: str
    course: str
    student: str
    grade: str
    feedback: str
    exam_id: Optional[int]
    exam_title: str
    created_at: Optional[datetime]


@dataclass
class ImportRow:
    line: int
    class_name: str
    student: str
    grade: str
    feedback: str
    exam_id: Optional[int]


def _flatten(text: Optional[str]) -> str:
    return (text or "").replace(",", ";").replace("\r\n", " ").replace("\n", " ")


def write_grades_csv(rows: Iterable[ExportRow]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(EXPORT_HEADER)
    for row in rows:
        writer.writerow([
            row.class_name or "",
            row.section or "",
            row.course or "",
            row.student or "",
            row.grade or "",
            _flatten(row.feedback),
            row.exam_id if row.exam_id is not None else "",
            _flatten(row.exam_title),
            row.created_at.isoformat() if row.created_at else "",
        ])
    return buffer.getvalue()


def parse_grades_csv(text: str) -> Tuple[List[ImportRow], List[str]]:
    """
    Parses an uploaded gradebook. The first line is a header and is skipped.

    Returns the parsed rows and a list of per-line error strings; line
    numbers refer to the file, so the first data row is line 2.
    """
    rows: List[ImportRow] = []
    errors: List[str] = []

    lines = text.strip().splitlines()
    reader = csv.reader(lines[1:])
    for offset, parts in enumerate(reader):
        line_no = offset + 2
        if not parts or not any(p.strip() for p in parts):
            continue
        if len(parts) < 3:
            errors.append(f"Line {line_no}: Invalid format (expected: {IMPORT_COLUMNS})")
            continue

        parts = [p.strip() for p in parts] + [""] * (5 - len(parts))
        class_name, student, grade, feedback, exam_id = parts[:5]
        if not class_name or not student or not grade:
            errors.append(f"Line {line_no}: Class, student, and grade are required")
            continue

        parsed_exam_id = None
        if exam_id:
            try:
                parsed_exam_id = int(exam_id)
            except ValueError:
                errors.append(f"Line {line_no}: Invalid exam id \"{exam_id}\"")
                continue

        rows.append(ImportRow(
            line=line_no,
            class_name=class_name,
            student=student,
            grade=grade,
            feedback=feedback,
            exam_id=parsed_exam_id,
        ))
    return rows, errors


def numeric_grade(grade: Optional[str]) -> Optional[float]:
    """
    Reads a stored grade string as a number for averaging.

    ``"87.5"`` is taken as is, ``"3/4"`` becomes a percentage and letter
    grades map onto fixed values.
    """
    letters = {"A": 95, "B": 85, "C": 75, "D": 65, "F": 50}
    if not grade:
        return None
    text = grade.strip()
    if "/" in text:
        num, _, den = text.partition("/")
        try:
            denominator = float(den)
            return float(num) / denominator * 100 if denominator else None
        except ValueError:
            return None
    try:
        return float(text)
    except ValueError:
        return letters.get(text.upper())


def write_responses_csv(questions: List[dict], responses: Iterable[dict], is_quiz: bool) -> str:
    """One row per form response, one column per question."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    header = ["Timestamp", "Respondent Name", "Respondent Email"] + [q.get("title") or "" for q in questions]
    if is_quiz:
        header += ["Score", "Max Score", "Percentage"]
    writer.writerow(header)

    for response in responses:
        respondent = response.get("respondent") or {}
        submitted = response.get("submitted_at")
        row = [
            submitted.isoformat() if isinstance(submitted, datetime) else submitted or "",
            respondent.get("name") or "Anonymous",
            respondent.get("email") or "N/A",
        ]
        answers = {str(a.get("question_id")): a.get("answer") for a in response.get("answers") or []}
        for question in questions:
            value = answers.get(str(question.get("id")))
            if isinstance(value, list):
                value = ", ".join(str(v) for v in value)
            row.append("" if value is None else str(value))
        if is_quiz:
            score = response.get("score") or {}
            row += [score.get("total", 0), score.get("max_score", 0), f"{score.get('percentage', 0):.2f}"]
        writer.writerow(row)
    return buffer.getvalue()

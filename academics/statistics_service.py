"""
Academic statistics: GPA, credits and success rate for transcripts
"""
from collections.abc import Mapping
from decimal import Decimal

from .exceptions import ReferenceNotFoundError
from .models import Grade, Student, UE

MENTIONS = [
    (80, 'Très Bien'),
    (70, 'Bien'),
    (60, 'Assez Bien'),
    (50, 'Passable'),
]


def _field(grade, *names):
    """Read a field from a Grade instance or a dict (camelCase or snake_case)"""
    for name in names:
        if isinstance(grade, Mapping):
            if name in grade:
                return grade[name]
        elif hasattr(grade, name):
            return getattr(grade, name)
    return None


def _credits_for(ue_credits_lookup, ue_id):
    if ue_credits_lookup is None:
        return 0
    if callable(ue_credits_lookup):
        credits = ue_credits_lookup(ue_id)
    else:
        credits = ue_credits_lookup.get(ue_id)
    return credits or 0


def compute_statistics(grades, ue_credits_lookup=None):
    """
    Aggregate a set of grade records.

    Args:
        grades: iterable of Grade objects or dicts with ueId/ue_id, grade, status
        ue_credits_lookup: mapping or callable ue_id -> credit weight

    Returns:
        dict: gpa, totalCredits, creditsEarned, successRate
    """
    total_credits = 0
    credits_earned = 0
    valid_scores = []

    for grade in grades or []:
        ue_id = _field(grade, 'ue_id', 'ueId')
        credits = _credits_for(ue_credits_lookup, ue_id)
        total_credits += credits

        if _field(grade, 'status') == Grade.STATUS_VALID:
            credits_earned += credits
            valid_scores.append(Decimal(str(_field(grade, 'grade'))))

    gpa = float(sum(valid_scores) / len(valid_scores)) if valid_scores else 0
    success_rate = round(credits_earned / total_credits * 100, 1) if total_credits else 0.0

    return {
        'gpa': gpa,
        'totalCredits': total_credits,
        'creditsEarned': credits_earned,
        'successRate': success_rate,
    }


def get_mention(gpa):
    """Honours label for a GPA on the 0-100 scale"""
    for threshold, label in MENTIONS:
        if gpa >= threshold:
            return label
    return 'Insuffisant'


class StatisticsService:
    """Read-side statistics built from active grades"""

    @classmethod
    def student_statistics(cls, student_id, academic_year_id=None, semester=None):
        """Statistics over a student's active grades for a period"""
        if not Student.objects.filter(pk=student_id).exists():
            raise ReferenceNotFoundError('Student', student_id)

        grades = Grade.objects.filter(student_id=student_id, is_active=True)
        if academic_year_id:
            grades = grades.filter(academic_year_id=academic_year_id)
        if semester:
            grades = grades.filter(semester=semester)
        grades = list(grades)

        credits_lookup = dict(
            UE.objects.filter(id__in={grade.ue_id for grade in grades}).values_list('id', 'credits')
        )

        statistics = compute_statistics(grades, credits_lookup)
        statistics['mention'] = get_mention(statistics['gpa'])
        statistics['gradesCount'] = len(grades)
        return statistics

    @classmethod
    def ue_statistics(cls, ue_id, academic_year_id=None, semester=None):
        """Counts by status and average score of a UE's active grades"""
        if not UE.objects.filter(pk=ue_id).exists():
            raise ReferenceNotFoundError('UE', ue_id)

        grades = Grade.objects.filter(ue_id=ue_id, is_active=True)
        if academic_year_id:
            grades = grades.filter(academic_year_id=academic_year_id)
        if semester:
            grades = grades.filter(semester=semester)
        scores = list(grades.values_list('grade', 'status'))

        total = len(scores)
        average = float(sum(score for score, _ in scores) / total) if total else 0

        return {
            'total': total,
            'valid': sum(1 for _, status in scores if status == Grade.STATUS_VALID),
            'retake': sum(1 for _, status in scores if status == Grade.STATUS_RETAKE),
            'nonValid': sum(1 for _, status in scores if status == Grade.STATUS_NON_VALID),
            'average': round(average, 2),
        }

"""
Tests for GPA, credits and success rate aggregation
"""
from django.test import SimpleTestCase, TestCase

from academics.exceptions import ReferenceNotFoundError
from academics.models import AcademicYear, Grade, Student, UE
from academics.statistics_service import StatisticsService, compute_statistics, get_mention


class ComputeStatisticsTest(SimpleTestCase):

    def test_credits_and_success_rate(self):
        grades = [
            {'ueId': 1, 'grade': 80, 'status': Grade.STATUS_VALID},
            {'ueId': 2, 'grade': 30, 'status': Grade.STATUS_NON_VALID},
        ]
        statistics = compute_statistics(grades, {1: 3, 2: 4})

        self.assertEqual(statistics, {
            'gpa': 80.0,
            'totalCredits': 7,
            'creditsEarned': 3,
            'successRate': 42.9,
        })

    def test_empty_set(self):
        self.assertEqual(compute_statistics([]), {
            'gpa': 0,
            'totalCredits': 0,
            'creditsEarned': 0,
            'successRate': 0.0,
        })

    def test_no_valid_grades_gives_zero_gpa(self):
        grades = [{'ueId': 1, 'grade': 50, 'status': Grade.STATUS_RETAKE}]
        statistics = compute_statistics(grades, {1: 5})
        self.assertEqual(statistics['gpa'], 0)
        self.assertEqual(statistics['totalCredits'], 5)
        self.assertEqual(statistics['successRate'], 0.0)

    def test_gpa_is_mean_of_valid_scores(self):
        grades = [
            {'ue_id': 1, 'grade': '70.50', 'status': Grade.STATUS_VALID},
            {'ue_id': 2, 'grade': '89.50', 'status': Grade.STATUS_VALID},
            {'ue_id': 3, 'grade': '10', 'status': Grade.STATUS_NON_VALID},
        ]
        statistics = compute_statistics(grades, lambda ue_id: 2)
        self.assertEqual(statistics['gpa'], 80.0)
        self.assertEqual(statistics['creditsEarned'], 4)
        self.assertEqual(statistics['successRate'], 66.7)

    def test_unknown_ue_counts_zero_credits(self):
        grades = [{'ueId': 9, 'grade': 75, 'status': Grade.STATUS_VALID}]
        statistics = compute_statistics(grades, {})
        self.assertEqual(statistics['totalCredits'], 0)
        self.assertEqual(statistics['successRate'], 0.0)
        self.assertEqual(statistics['gpa'], 75.0)


class MentionTest(SimpleTestCase):

    def test_thresholds(self):
        self.assertEqual(get_mention(85), 'Très Bien')
        self.assertEqual(get_mention(80), 'Très Bien')
        self.assertEqual(get_mention(79.99), 'Bien')
        self.assertEqual(get_mention(65), 'Assez Bien')
        self.assertEqual(get_mention(50), 'Passable')
        self.assertEqual(get_mention(0), 'Insuffisant')


class StatisticsServiceTest(TestCase):

    def setUp(self):
        self.student = Student.objects.create(first_name='Awa', last_name='Diop', student_id='ETU001')
        self.year = AcademicYear.objects.create(year='2023-2024', start_date='2023-10-01', end_date='2024-07-31')
        self.other_year = AcademicYear.objects.create(year='2022-2023', start_date='2022-10-01', end_date='2023-07-31')
        self.ue_algo = UE.objects.create(code='INF101', title='Algorithmique', credits=3)
        self.ue_math = UE.objects.create(code='MTH101', title='Analyse', credits=4)

        self._grade(self.ue_algo, 80, Grade.STATUS_VALID)
        self._grade(self.ue_math, 30, Grade.STATUS_NON_VALID)
        # Superseded attempt, not counted
        self._grade(self.ue_math, 10, Grade.STATUS_NON_VALID, is_active=False, semester='S2')
        # Other year
        self._grade(self.ue_math, 90, Grade.STATUS_VALID, academic_year=self.other_year)

    def _grade(self, ue, score, status, is_active=True, semester='S1', academic_year=None):
        return Grade.objects.create(
            student=self.student,
            ue=ue,
            academic_year=academic_year or self.year,
            semester=semester,
            grade=score,
            status=status,
            is_active=is_active,
        )

    def test_student_statistics_for_year(self):
        statistics = StatisticsService.student_statistics(self.student.id, academic_year_id=self.year.id)

        self.assertEqual(statistics['gpa'], 80.0)
        self.assertEqual(statistics['totalCredits'], 7)
        self.assertEqual(statistics['creditsEarned'], 3)
        self.assertEqual(statistics['successRate'], 42.9)
        self.assertEqual(statistics['mention'], 'Très Bien')
        self.assertEqual(statistics['gradesCount'], 2)

    def test_student_statistics_all_years(self):
        statistics = StatisticsService.student_statistics(self.student.id)
        self.assertEqual(statistics['gradesCount'], 3)
        self.assertEqual(statistics['gpa'], 85.0)

    def test_unknown_student(self):
        with self.assertRaises(ReferenceNotFoundError):
            StatisticsService.student_statistics(9999)

    def test_ue_statistics(self):
        statistics = StatisticsService.ue_statistics(self.ue_math.id)
        self.assertEqual(statistics, {
            'total': 2,
            'valid': 1,
            'retake': 0,
            'nonValid': 1,
            'average': 60.0,
        })

    def test_ue_statistics_unknown_ue(self):
        with self.assertRaises(ReferenceNotFoundError):
            StatisticsService.ue_statistics(9999)

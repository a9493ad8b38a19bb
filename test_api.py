"""
Tests for the enrollment, grade and statistics HTTP endpoints
"""
from django.test import TestCase
from rest_framework.test import APIClient

from academics.models import AcademicYear, AuditLog, Enrollment, Faculty, Grade, Student, UE


class ApiTestCase(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.faculty = Faculty.objects.create(name='Sciences', code='FST')
        self.year_2022 = AcademicYear.objects.create(year='2022-2023', start_date='2022-10-01', end_date='2023-07-31')
        self.year = AcademicYear.objects.create(year='2023-2024', start_date='2023-10-01', end_date='2024-07-31')
        self.student = Student.objects.create(first_name='Awa', last_name='Diop', student_id='ETU001')
        self.ue = UE.objects.create(code='INF101', title='Algorithmique', credits=3)
        self.ue_math = UE.objects.create(code='MTH101', title='Analyse', credits=4)

    def post_enrollment(self, level='1', academic_year=None, **extra):
        payload = {
            'studentId': self.student.id,
            'facultyId': self.faculty.id,
            'level': level,
            'academicYearId': (academic_year or self.year).id,
        }
        payload.update(extra)
        return self.client.post('/api/enrollments/', payload, format='json')

    def post_grade(self, score, ue=None, **extra):
        payload = {
            'studentId': self.student.id,
            'ueId': (ue or self.ue).id,
            'academicYearId': self.year.id,
            'semester': 'S1',
            'grade': score,
        }
        payload.update(extra)
        return self.client.post('/api/grades/', payload, format='json')


class EnrollmentApiTest(ApiTestCase):

    def test_create_enrollment(self):
        response = self.post_enrollment()

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body['status'], 'success')
        self.assertEqual(body['data']['status'], 'Active')
        self.assertEqual(body['data']['faculty'], 'Sciences')
        self.assertEqual(body['data']['academicYear'], '2023-2024')
        self.assertEqual(body['data']['student']['studentId'], 'ETU001')

    def test_create_with_legacy_faculty_field(self):
        response = self.client.post('/api/enrollments/', {
            'studentId': self.student.id,
            'faculty': self.faculty.id,
            'level': '1',
            'academicYearId': self.year.id,
        }, format='json')
        self.assertEqual(response.status_code, 201)

    def test_conflicts_return_409(self):
        self.post_enrollment()

        response = self.post_enrollment()
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['kind'], 'DuplicateEnrollment')

        response = self.post_enrollment(level='2')
        self.assertEqual(response.status_code, 409)
        body = response.json()
        self.assertEqual(body['status'], 'error')
        self.assertEqual(body['kind'], 'MultipleEnrollmentsSameYear')
        self.assertEqual(body['details']['existingEnrollment']['level'], '1')

    def test_unknown_reference_returns_400(self):
        response = self.post_enrollment(facultyId=9999)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'REFERENCE_NOT_FOUND')

    def test_missing_fields_return_400(self):
        response = self.client.post('/api/enrollments/', {'studentId': self.student.id}, format='json')
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'VALIDATION_ERROR')

    def test_list_enrollments(self):
        self.post_enrollment(academic_year=self.year_2022)
        self.post_enrollment(level='2')

        response = self.client.get('/api/enrollments/', {'studentId': self.student.id, 'status': 'Active'})

        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(len(data), 1)
        self.assertEqual(data[0]['level'], '2')

    def test_update_and_delete(self):
        enrollment_id = self.post_enrollment().json()['data']['id']

        response = self.client.patch(f'/api/enrollments/{enrollment_id}/', {'level': '2'}, format='json')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['level'], '2')

        response = self.client.delete(f'/api/enrollments/{enrollment_id}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Enrollment.objects.exists())

        response = self.client.delete(f'/api/enrollments/{enrollment_id}/')
        self.assertEqual(response.status_code, 404)

    def test_fix_statuses(self):
        for level, year in [('1', self.year_2022), ('2', self.year)]:
            Enrollment.objects.create(
                student=self.student, faculty=self.faculty, level=level,
                academic_year=year, status=Enrollment.STATUS_ACTIVE
            )

        response = self.client.post(f'/api/enrollments/fix-statuses/{self.student.id}/')
        self.assertEqual(response.status_code, 200)
        statuses = [e['status'] for e in response.json()['data']]
        self.assertEqual(statuses.count('Active'), 1)

        response = self.client.post('/api/enrollments/fix-statuses/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['fixedCount'], 0)
        self.assertEqual(response.json()['data']['studentsChecked'], 1)

    def test_fix_statuses_unknown_student(self):
        response = self.client.post('/api/enrollments/fix-statuses/9999/')
        self.assertEqual(response.status_code, 400)

    def test_request_ip_is_audited(self):
        self.client.post('/api/enrollments/', {
            'studentId': self.student.id,
            'facultyId': self.faculty.id,
            'level': '1',
            'academicYearId': self.year.id,
        }, format='json', REMOTE_ADDR='192.168.1.20')

        log = AuditLog.objects.get(action='CREATE_ENROLLMENT_SUCCESS')
        self.assertEqual(log.ip_address, '192.168.1.20')
        self.assertIsNone(log.user)


class GradeApiTest(ApiTestCase):

    def test_submit_grade(self):
        response = self.post_grade(75)

        self.assertEqual(response.status_code, 201)
        data = response.json()['data']
        self.assertEqual(data['grade'], 75.0)
        self.assertEqual(data['status'], 'Valid')
        self.assertEqual(data['session'], 'Normal')
        self.assertEqual(data['ueCode'], 'INF101')
        self.assertTrue(data['isActive'])

    def test_invalid_score(self):
        response = self.post_grade(120)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'INVALID_SCORE')

    def test_duplicate_grade(self):
        self.post_grade(50)
        response = self.post_grade(80)
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['kind'], 'GradeAlreadyExists')

    def test_retake_and_history(self):
        grade_id = self.post_grade(50).json()['data']['id']

        response = self.client.post(f'/api/grades/{grade_id}/retake/', {'grade': 66}, format='json')
        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()['data']['previousGradeId'], grade_id)
        self.assertEqual(response.json()['data']['session'], 'Retake')

        response = self.client.post(f'/api/grades/{grade_id}/retake/', {'grade': 70}, format='json')
        self.assertEqual(response.status_code, 409)

        response = self.client.get(
            f'/api/grades/history/{self.student.id}/{self.ue.id}/{self.year.id}/S1/'
        )
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body['count'], 2)
        self.assertEqual([g['isActive'] for g in body['data']], [True, False])

    def test_retake_missing_grade(self):
        response = self.client.post('/api/grades/9999/retake/', {'grade': 70}, format='json')
        self.assertEqual(response.status_code, 404)

    def test_list_grades(self):
        self.post_grade(75)
        self.post_grade(30, ue=self.ue_math)

        response = self.client.get('/api/grades/', {'studentId': self.student.id, 'status': 'NonValid'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['count'], 1)
        self.assertEqual(response.json()['data'][0]['ueCode'], 'MTH101')

    def test_bulk(self):
        response = self.client.post('/api/grades/bulk/', {'grades': [
            {'studentId': self.student.id, 'ueId': self.ue.id, 'academicYearId': self.year.id, 'semester': 'S1', 'grade': 75},
            {'studentId': self.student.id, 'ueId': self.ue_math.id, 'academicYearId': self.year.id, 'semester': 'S1', 'grade': 'abc'},
        ]}, format='json')

        self.assertEqual(response.status_code, 201)
        body = response.json()
        self.assertEqual(body['summary'], {'total': 2, 'success': 1, 'errors': 1})
        self.assertEqual(body['data']['failed'][0]['index'], 1)
        self.assertEqual(body['data']['failed'][0]['error']['error'], 'INVALID_SCORE')

    def test_bulk_requires_grades(self):
        response = self.client.post('/api/grades/bulk/', {'grades': []}, format='json')
        self.assertEqual(response.status_code, 400)

    def test_get_grade(self):
        grade_id = self.post_grade(50).json()['data']['id']

        response = self.client.get(f'/api/grades/{grade_id}/')
        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['id'], grade_id)
        self.assertEqual(data['status'], 'Retake')
        self.assertEqual(data['ueTitle'], 'Algorithmique')

        response = self.client.get('/api/grades/9999/')
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'NOT_FOUND')

    def test_delete_grade(self):
        grade_id = self.post_grade(75).json()['data']['id']

        response = self.client.delete(f'/api/grades/{grade_id}/')
        self.assertEqual(response.status_code, 200)
        self.assertFalse(Grade.objects.get(pk=grade_id).is_active)

        response = self.client.delete(f'/api/grades/{grade_id}/')
        self.assertEqual(response.status_code, 404)


class StatisticsApiTest(ApiTestCase):

    def test_student_statistics(self):
        self.post_grade(80)
        self.post_grade(30, ue=self.ue_math)

        response = self.client.get(f'/api/students/{self.student.id}/statistics/', {'academicYearId': self.year.id})

        self.assertEqual(response.status_code, 200)
        data = response.json()['data']
        self.assertEqual(data['totalCredits'], 7)
        self.assertEqual(data['creditsEarned'], 3)
        self.assertEqual(data['gpa'], 80.0)
        self.assertEqual(data['successRate'], 42.9)

    def test_unknown_student(self):
        response = self.client.get('/api/students/9999/statistics/')
        self.assertEqual(response.status_code, 400)

    def test_ue_statistics(self):
        self.post_grade(50)
        response = self.client.get(f'/api/ues/{self.ue.id}/statistics/')
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['data']['retake'], 1)

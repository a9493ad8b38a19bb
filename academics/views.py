from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from .enrollment_service import EnrollmentService
from .exceptions import AcademicsError
from .grade_service import GradeLedgerService
from .serializers import (
    EnrollmentCreateSerializer, EnrollmentSerializer, EnrollmentUpdateSerializer,
    GradeBulkSerializer, GradeSerializer, GradeSubmitSerializer, RetakeSerializer
)
from .statistics_service import StatisticsService

# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def get_request_context(request):
    """Actor and IP address passed to the services for audit logging"""
    user = request.user if request.user and request.user.is_authenticated else None
    return {'actor': user, 'ip_address': request.META.get('REMOTE_ADDR')}


def error_response(error):
    """Render a domain error with its HTTP status"""
    return Response({
        'status': 'error',
        **error.to_dict()
    }, status=error.http_status)


def invalid_payload_response(serializer):
    return Response({
        'status': 'error',
        'error': 'VALIDATION_ERROR',
        'message': 'Invalid data',
        'details': serializer.errors
    }, status=status.HTTP_400_BAD_REQUEST)

# ============================================================================
# ENROLLMENT VIEWS
# ============================================================================

@api_view(['GET', 'POST'])
def enrollments(request):
    """List enrollments or enroll a student"""
    if request.method == 'GET':
        enrollment_list = EnrollmentService.list_enrollments(
            student_id=request.GET.get('studentId'),
            academic_year_id=request.GET.get('academicYearId'),
            status=request.GET.get('status')
        )
        return Response({
            'status': 'success',
            'data': EnrollmentSerializer(enrollment_list, many=True).data
        })

    serializer = EnrollmentCreateSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_payload_response(serializer)

    data = serializer.validated_data
    try:
        enrollment = EnrollmentService.create_enrollment(
            student_id=data['studentId'],
            faculty_id=data['facultyId'],
            level=data['level'],
            academic_year_id=data['academicYearId'],
            enrollment_date=data.get('enrollmentDate'),
            **get_request_context(request)
        )
    except AcademicsError as e:
        return error_response(e)

    return Response({
        'status': 'success',
        'message': 'Enrollment created successfully',
        'data': EnrollmentSerializer(enrollment).data
    }, status=status.HTTP_201_CREATED)


@api_view(['PUT', 'PATCH', 'DELETE'])
def enrollment_detail(request, enrollment_id):
    """Update or delete one enrollment"""
    try:
        if request.method == 'DELETE':
            EnrollmentService.delete_enrollment(enrollment_id, **get_request_context(request))
            return Response({
                'status': 'success',
                'message': 'Enrollment deleted successfully'
            })

        serializer = EnrollmentUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_payload_response(serializer)

        enrollment = EnrollmentService.update_enrollment(
            enrollment_id,
            serializer.validated_data,
            **get_request_context(request)
        )
    except AcademicsError as e:
        return error_response(e)

    return Response({
        'status': 'success',
        'message': 'Enrollment updated successfully',
        'data': EnrollmentSerializer(enrollment).data
    })


@api_view(['POST'])
def fix_enrollment_statuses(request, student_id=None):
    """Repair the single-active-enrollment invariant for one or all students"""
    try:
        if student_id is not None:
            enrollment_list = EnrollmentService.fix_student_enrollment_status(
                student_id, **get_request_context(request)
            )
            return Response({
                'status': 'success',
                'message': f'Enrollment statuses checked for student {student_id}',
                'data': EnrollmentSerializer(enrollment_list, many=True).data
            })

        summary = EnrollmentService.fix_all_students(**get_request_context(request))
    except AcademicsError as e:
        return error_response(e)

    return Response({
        'status': 'success',
        'message': f"Enrollment statuses checked for {summary['studentsChecked']} students, {summary['fixedCount']} fixed",
        'data': summary
    })

# ============================================================================
# GRADE VIEWS
# ============================================================================

@api_view(['GET', 'POST'])
def grades(request):
    """List active grades or submit a grade"""
    try:
        if request.method == 'GET':
            grade_list = GradeLedgerService.list_active_grades(
                student_id=request.GET.get('studentId'),
                ue_id=request.GET.get('ueId'),
                academic_year_id=request.GET.get('academicYearId'),
                semester=request.GET.get('semester'),
                status=request.GET.get('status'),
                session=request.GET.get('session')
            )
            data = GradeSerializer(grade_list, many=True).data
            return Response({
                'status': 'success',
                'count': len(data),
                'data': data
            })

        serializer = GradeSubmitSerializer(data=request.data)
        if not serializer.is_valid():
            return invalid_payload_response(serializer)

        data = serializer.validated_data
        grade = GradeLedgerService.submit_grade(
            student_id=data['studentId'],
            ue_id=data['ueId'],
            academic_year_id=data['academicYearId'],
            semester=data['semester'],
            score=data['grade'],
            session=data['session'],
            level=data['level'],
            **get_request_context(request)
        )
    except AcademicsError as e:
        return error_response(e)

    return Response({
        'status': 'success',
        'message': 'Grade created successfully',
        'data': GradeSerializer(grade).data
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
def grades_bulk(request):
    """Submit several grades; failures are reported per entry"""
    serializer = GradeBulkSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_payload_response(serializer)

    grade_list = serializer.validated_data['grades']
    try:
        results = GradeLedgerService.bulk_submit(grade_list, **get_request_context(request))
    except AcademicsError as e:
        return error_response(e)

    return Response({
        'status': 'success',
        'message': 'Grade processing finished',
        'summary': {
            'total': len(grade_list),
            'success': len(results['succeeded']),
            'errors': len(results['failed']),
        },
        'data': {
            'succeeded': GradeSerializer(results['succeeded'], many=True).data,
            'failed': results['failed'],
        }
    }, status=status.HTTP_201_CREATED)


@api_view(['POST'])
def grade_retake(request, grade_id):
    """Record a retake of an existing grade"""
    serializer = RetakeSerializer(data=request.data)
    if not serializer.is_valid():
        return invalid_payload_response(serializer)

    try:
        grade = GradeLedgerService.record_retake(
            grade_id,
            serializer.validated_data['grade'],
            **get_request_context(request)
        )
    except AcademicsError as e:
        return error_response(e)

    return Response({
        'status': 'success',
        'message': 'Retake grade created successfully',
        'data': GradeSerializer(grade).data
    }, status=status.HTTP_201_CREATED)


@api_view(['GET', 'DELETE'])
def grade_detail(request, grade_id):
    """Get one grade, or deactivate it (kept in history)"""
    try:
        if request.method == 'GET':
            grade = GradeLedgerService.get_grade(grade_id)
            return Response({
                'status': 'success',
                'data': GradeSerializer(grade).data
            })

        grade = GradeLedgerService.deactivate_grade(grade_id, **get_request_context(request))
    except AcademicsError as e:
        return error_response(e)

    return Response({
        'status': 'success',
        'message': 'Grade deleted successfully',
        'data': {
            'id': grade.id,
            'studentId': grade.student_id,
            'ueId': grade.ue_id,
            'grade': float(grade.grade),
            'session': grade.session,
        }
    })


@api_view(['GET'])
def grade_history(request, student_id, ue_id, academic_year_id, semester):
    """Every attempt for a (student, UE, year, semester) key, newest first"""
    history = GradeLedgerService.get_history(student_id, ue_id, academic_year_id, semester)
    return Response({
        'status': 'success',
        'studentId': student_id,
        'ueId': ue_id,
        'academicYearId': academic_year_id,
        'semester': semester,
        'count': len(history),
        'data': GradeSerializer(history, many=True).data
    })

# ============================================================================
# STATISTICS VIEWS
# ============================================================================

@api_view(['GET'])
def student_statistics(request, student_id):
    """GPA, credits and success rate of a student's active grades"""
    try:
        statistics = StatisticsService.student_statistics(
            student_id,
            academic_year_id=request.GET.get('academicYearId'),
            semester=request.GET.get('semester')
        )
    except AcademicsError as e:
        return error_response(e)

    return Response({
        'status': 'success',
        'data': statistics
    })


@api_view(['GET'])
def ue_statistics(request, ue_id):
    """Status counts and average of a UE's active grades"""
    try:
        statistics = StatisticsService.ue_statistics(
            ue_id,
            academic_year_id=request.GET.get('academicYearId'),
            semester=request.GET.get('semester')
        )
    except AcademicsError as e:
        return error_response(e)

    return Response({
        'status': 'success',
        'data': statistics
    })

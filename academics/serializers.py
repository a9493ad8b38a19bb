from rest_framework import serializers
from .models import Enrollment, Grade, Student


class StudentSummarySerializer(serializers.ModelSerializer):
    """Student fields shown next to enrollments and grades"""
    studentId = serializers.CharField(source='student_id')
    firstName = serializers.CharField(source='first_name')
    lastName = serializers.CharField(source='last_name')

    class Meta:
        model = Student
        fields = ['id', 'studentId', 'firstName', 'lastName', 'email']


class EnrollmentSerializer(serializers.ModelSerializer):
    """Enrollment with faculty and academic year resolved for display"""
    studentId = serializers.IntegerField(source='student_id', read_only=True)
    facultyId = serializers.IntegerField(source='faculty_id', read_only=True)
    faculty = serializers.CharField(source='faculty.name', read_only=True)
    academicYearId = serializers.IntegerField(source='academic_year_id', read_only=True)
    academicYear = serializers.CharField(source='academic_year.year', read_only=True)
    enrollmentDate = serializers.DateTimeField(source='enrollment_date', read_only=True)
    student = StudentSummarySerializer(read_only=True)

    class Meta:
        model = Enrollment
        fields = [
            'id', 'studentId', 'student', 'facultyId', 'faculty', 'level',
            'academicYearId', 'academicYear', 'status', 'enrollmentDate'
        ]


class EnrollmentCreateSerializer(serializers.Serializer):
    """Payload for creating an enrollment"""
    studentId = serializers.CharField()
    facultyId = serializers.CharField(required=False)
    faculty = serializers.CharField(required=False)  # legacy clients send the faculty id here
    level = serializers.CharField(max_length=10)
    academicYearId = serializers.CharField()
    enrollmentDate = serializers.CharField(required=False, allow_blank=True)

    def validate(self, data):
        # Accept either facultyId or faculty
        if not data.get('facultyId') and not data.get('faculty'):
            raise serializers.ValidationError({'facultyId': 'This field is required.'})
        data['facultyId'] = data.get('facultyId') or data.get('faculty')
        return data


class EnrollmentUpdateSerializer(serializers.Serializer):
    """Partial update payload; faculty and academicYear may be names/labels"""
    facultyId = serializers.CharField(required=False)
    faculty = serializers.CharField(required=False)
    academicYearId = serializers.CharField(required=False)
    academicYear = serializers.CharField(required=False)
    level = serializers.CharField(required=False, max_length=10)
    status = serializers.ChoiceField(choices=Enrollment.STATUS_CHOICES, required=False)
    enrollmentDate = serializers.CharField(required=False)


class GradeSerializer(serializers.ModelSerializer):
    """Grade row with UE and academic year resolved for display"""
    studentId = serializers.IntegerField(source='student_id', read_only=True)
    ueId = serializers.IntegerField(source='ue_id', read_only=True)
    ueCode = serializers.CharField(source='ue.code', read_only=True)
    ueTitle = serializers.CharField(source='ue.title', read_only=True)
    credits = serializers.IntegerField(source='ue.credits', read_only=True)
    academicYearId = serializers.IntegerField(source='academic_year_id', read_only=True)
    academicYear = serializers.CharField(source='academic_year.year', read_only=True)
    grade = serializers.FloatField(read_only=True)
    isActive = serializers.BooleanField(source='is_active', read_only=True)
    previousGradeId = serializers.IntegerField(source='previous_grade_id', read_only=True)
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = Grade
        fields = [
            'id', 'studentId', 'ueId', 'ueCode', 'ueTitle', 'credits',
            'academicYearId', 'academicYear', 'semester', 'level', 'grade',
            'status', 'session', 'isActive', 'previousGradeId', 'createdAt'
        ]


class GradeSubmitSerializer(serializers.Serializer):
    """Payload for submitting one grade; score range is checked by the ledger"""
    studentId = serializers.CharField()
    ueId = serializers.CharField()
    academicYearId = serializers.CharField()
    semester = serializers.CharField(max_length=2)
    grade = serializers.CharField()
    session = serializers.CharField(required=False, default=Grade.SESSION_NORMAL)
    level = serializers.CharField(required=False, allow_blank=True, default='')


class GradeBulkSerializer(serializers.Serializer):
    grades = serializers.ListField(child=serializers.DictField(), allow_empty=False)


class RetakeSerializer(serializers.Serializer):
    grade = serializers.CharField()


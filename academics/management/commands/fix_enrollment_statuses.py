from django.core.management.base import BaseCommand, CommandError
from academics.enrollment_service import EnrollmentService
from academics.exceptions import StorageError
from academics.models import Enrollment, Student

class Command(BaseCommand):
    help = 'Find students with more than one Active enrollment and keep only the most recent one active'

    def add_arguments(self, parser):
        parser.add_argument(
            '--fix',
            action='store_true',
            help='Actually fix the issues (default is dry run)',
        )
        parser.add_argument(
            '--student',
            type=int,
            help='Only check the student with this id',
        )

    def handle(self, *args, **options):
        fix_mode = options['fix']
        student_id = options.get('student')

        if fix_mode:
            self.stdout.write(self.style.WARNING("FIXING MODE: Will make changes to the database"))
        else:
            self.stdout.write(self.style.SUCCESS("DRY RUN MODE: No changes will be made"))

        students = Student.objects.order_by('id')
        if student_id is not None:
            students = students.filter(id=student_id)
            if not students.exists():
                raise CommandError(f"Student {student_id} does not exist")

        self.stdout.write("\n=== CHECKING ACTIVE ENROLLMENTS ===")

        issues_found = 0
        enrollments_updated = 0

        for student in students:
            active_enrollments = list(
                Enrollment.objects.filter(
                    student=student,
                    status=Enrollment.STATUS_ACTIVE
                ).select_related('faculty', 'academic_year').order_by('-enrollment_date', '-id')
            )

            if len(active_enrollments) <= 1:
                continue

            issues_found += 1
            kept = active_enrollments[0]
            self.stdout.write(f"\nStudent: {student.student_id} - {student.get_full_name()}")
            self.stdout.write(self.style.ERROR(f"  ISSUE: {len(active_enrollments)} active enrollments"))
            self.stdout.write(f"  Keep: {kept.faculty.name} L{kept.level} ({kept.academic_year.year})")

            if fix_mode:
                try:
                    changed = EnrollmentService.ensure_single_active_enrollment(student.id)
                    enrollments_updated += changed
                    self.stdout.write(self.style.SUCCESS(f"  FIXED: {changed} enrollment(s) marked Completed"))
                except StorageError as e:
                    self.stdout.write(self.style.ERROR(f"  ERROR: Failed to fix enrollments: {e}"))
            else:
                for enrollment in active_enrollments[1:]:
                    self.stdout.write(self.style.WARNING(
                        f"  WOULD FIX: Mark {enrollment.faculty.name} L{enrollment.level} "
                        f"({enrollment.academic_year.year}) as Completed"
                    ))

        self.stdout.write(f"\n=== SUMMARY ===")
        self.stdout.write(f"Students checked: {students.count()}")
        self.stdout.write(f"Issues found: {issues_found}")

        if issues_found > 0 and not fix_mode:
            self.stdout.write(self.style.WARNING("Run with --fix to actually fix these issues"))
        elif issues_found == 0:
            self.stdout.write(self.style.SUCCESS("No issues found!"))
        else:
            self.stdout.write(self.style.SUCCESS(f"All issues have been fixed! {enrollments_updated} enrollment(s) updated"))

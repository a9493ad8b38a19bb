from django.urls import path
from . import views

urlpatterns = [
    # Enrollments
    path('enrollments/', views.enrollments, name='enrollments'),
    path('enrollments/fix-statuses/', views.fix_enrollment_statuses, name='fix_enrollment_statuses'),
    path('enrollments/fix-statuses/<int:student_id>/', views.fix_enrollment_statuses, name='fix_student_enrollment_status'),
    path('enrollments/<int:enrollment_id>/', views.enrollment_detail, name='enrollment_detail'),

    # Grades
    path('grades/', views.grades, name='grades'),
    path('grades/bulk/', views.grades_bulk, name='grades_bulk'),
    path('grades/<int:grade_id>/', views.grade_detail, name='grade_detail'),
    path('grades/<int:grade_id>/retake/', views.grade_retake, name='grade_retake'),
    path(
        'grades/history/<int:student_id>/<int:ue_id>/<int:academic_year_id>/<str:semester>/',
        views.grade_history,
        name='grade_history'
    ),

    # Statistics
    path('students/<int:student_id>/statistics/', views.student_statistics, name='student_statistics'),
    path('ues/<int:ue_id>/statistics/', views.ue_statistics, name='ue_statistics'),
]

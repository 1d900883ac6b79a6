"""Database seeding service for demo data."""
from attendance_engine import db
from attendance_engine.models.course import Course
from attendance_engine.models.user import User, UserRole

DEMO_PASSWORD = 'password123'

class SeedService:
    """Service to seed database with demo data."""
    
    @staticmethod
    def _user(email: str, name: str, role: UserRole, roll_number: str = None) -> User:
        user = User.query.filter_by(email=email).first()
        if user is None:
            user = User(email=email, name=name, role=role, roll_number=roll_number)
            user.set_password(DEMO_PASSWORD)
            db.session.add(user)
        return user
    
    @staticmethod
    def seed_demo(student_count: int = 5) -> dict:
        """Create (or reuse) a teacher, a class and enrolled students."""
        teacher = SeedService._user('teacher@demo.edu', 'Demo Teacher', UserRole.TEACHER)
        students = [
            SeedService._user(f'student{i}@demo.edu', f'Demo Student {i}', UserRole.STUDENT, f'R{i:03d}')
            for i in range(1, student_count + 1)
        ]
        db.session.flush()
        
        course = Course.query.filter_by(subject_code='DEMO101').first()
        if course is None:
            course = Course(subject_name='Demo Subject', subject_code='DEMO101',
                            teacher_id=teacher.id, min_attendance=75)
            db.session.add(course)
        for student in students:
            if student not in course.students:
                course.students.append(student)
        
        db.session.commit()
        return {
            'class_id': course.id,
            'teacher_email': teacher.email,
            'student_emails': [s.email for s in students]
        }

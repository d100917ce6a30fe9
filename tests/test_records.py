from datetime import date

from database import get_session
from models import Teacher
from notification_models import Notification


def _mark_payload(student_id, subject_id, **overrides):
    payload = {
        'studentId': student_id, 'subjectId': subject_id, 'examType': 'midterm',
        'marksObtained': 78.5, 'totalMarks': 100, 'examDate': '2024-09-20',
    }
    payload.update(overrides)
    return {k: v for k, v in payload.items() if v is not None}


def _notification_titles(user_id=None):
    session = get_session()
    try:
        query = session.query(Notification)
        if user_id is not None:
            query = query.filter_by(recipient_id=user_id)
        return [n.title for n in query.order_by(Notification.id).all()]
    finally:
        session.close()


def _teacher_user(teacher_id):
    session = get_session()
    try:
        return session.get(Teacher, teacher_id).user_id
    finally:
        session.close()


class TestMarks:
    def test_mark_lifecycle(self, client, make_student, make_subject):
        student_id = make_student()
        subject_id = make_subject()

        response = client.post('/api/marks', json=_mark_payload(student_id, subject_id, remarks='Good effort'))
        assert response.status_code == 201
        mark = response.get_json()
        assert mark['marksObtained'] == 78.5
        assert mark['totalMarks'] == 100.0
        assert mark['examDate'] == '2024-09-20'
        assert mark['remarks'] == 'Good effort'

        response = client.put(f"/api/marks?id={mark['id']}", json={'marksObtained': 91})
        assert response.get_json()['marksObtained'] == 91.0

        listed = client.get(f'/api/marks?studentId={student_id}&examType=midterm').get_json()
        assert [m['id'] for m in listed] == [mark['id']]
        assert client.get('/api/marks?examType=final').get_json() == []

        response = client.delete(f"/api/marks?id={mark['id']}")
        assert response.get_json()['message'] == 'Mark entry deleted successfully'
        response = client.get(f"/api/marks?id={mark['id']}")
        assert response.status_code == 404
        assert response.get_json()['code'] == 'MARK_NOT_FOUND'

    def test_missing_fields(self, client, make_student, make_subject):
        student_id = make_student()
        subject_id = make_subject()

        def code(**overrides):
            payload = {k: v for k, v in _mark_payload(student_id, subject_id).items() if k not in overrides}
            return client.post('/api/marks', json=payload).get_json()['code']

        assert code(studentId=None) == 'MISSING_STUDENT_ID'
        assert code(subjectId=None) == 'MISSING_SUBJECT_ID'
        assert code(examType=None) == 'MISSING_EXAM_TYPE'
        assert code(marksObtained=None) == 'MISSING_MARKS_OBTAINED'
        assert code(totalMarks=None) == 'MISSING_TOTAL_MARKS'
        assert code(examDate=None) == 'MISSING_EXAM_DATE'

    def test_invalid_values(self, client, make_student, make_subject):
        student_id = make_student()
        subject_id = make_subject()

        def code(**overrides):
            return client.post('/api/marks', json=_mark_payload(student_id, subject_id, **overrides)).get_json()['code']

        assert code(studentId='abc') == 'INVALID_STUDENT_ID'
        assert code(subjectId='abc') == 'INVALID_SUBJECT_ID'
        assert code(marksObtained='lots') == 'INVALID_MARKS_OBTAINED'
        assert code(marksObtained=-1) == 'INVALID_MARKS_OBTAINED'
        assert code(totalMarks=0) == 'INVALID_TOTAL_MARKS'
        assert code(examDate='20/09/2024') == 'INVALID_EXAM_DATE'
        assert code(marksObtained=101) == 'MARKS_EXCEED_TOTAL'
        assert code(studentId=999) == 'STUDENT_NOT_FOUND'
        assert code(subjectId=999) == 'SUBJECT_NOT_FOUND'

    def test_update_cannot_exceed_total(self, client, make_student, make_subject):
        mark_id = client.post('/api/marks', json=_mark_payload(make_student(), make_subject())).get_json()['id']

        response = client.put(f'/api/marks?id={mark_id}', json={'totalMarks': 50})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'MARKS_EXCEED_TOTAL'
        assert client.get(f'/api/marks?id={mark_id}').get_json()['totalMarks'] == 100.0
        assert client.put(f'/api/marks?id={mark_id}', json={}).get_json()['code'] == 'NO_UPDATES'

    def test_subject_with_marks_cannot_be_deleted(self, client, make_student, make_subject):
        subject_id = make_subject()
        client.post('/api/marks', json=_mark_payload(make_student(), subject_id))

        response = client.delete(f'/api/subjects?id={subject_id}')

        assert response.status_code == 400
        assert response.get_json()['code'] == 'SUBJECT_IN_USE'


class TestTeacherRemarks:
    def test_remark_lifecycle(self, client, make_teacher, make_student, make_subject):
        teacher_id = make_teacher()
        student_id = make_student()
        subject_id = make_subject()

        response = client.post('/api/teacher-remarks', json={
            'teacherId': teacher_id, 'studentId': student_id, 'subjectId': subject_id,
            'remarkText': 'Helps classmates with fractions', 'remarkType': 'positive',
        })
        assert response.status_code == 201
        remark = response.get_json()
        assert remark['date'] == date.today().isoformat()
        assert remark['remarkType'] == 'positive'

        response = client.put(f"/api/teacher-remarks?id={remark['id']}", json={'remarkType': 'neutral', 'subjectId': None})
        assert response.get_json()['remarkType'] == 'neutral'
        assert response.get_json()['subjectId'] is None

        listed = client.get(f'/api/teacher-remarks?studentId={student_id}&remarkType=neutral').get_json()
        assert [r['id'] for r in listed] == [remark['id']]

        assert client.delete(f"/api/teacher-remarks?id={remark['id']}").status_code == 200
        assert client.get(f"/api/teacher-remarks?id={remark['id']}").get_json()['code'] == 'REMARK_NOT_FOUND'

    def test_remark_validation(self, client, make_teacher, make_student):
        teacher_id = make_teacher()
        student_id = make_student()
        base = {'teacherId': teacher_id, 'studentId': student_id, 'remarkText': 'Late twice', 'remarkType': 'negative'}

        def code(**overrides):
            payload = {k: v for k, v in dict(base, **overrides).items() if v is not None}
            return client.post('/api/teacher-remarks', json=payload).get_json()['code']

        assert code(teacherId=None) == 'MISSING_TEACHER_ID'
        assert code(studentId=None) == 'MISSING_STUDENT_ID'
        assert code(remarkText=' ') == 'MISSING_REMARK_TEXT'
        assert code(remarkType=None) == 'MISSING_REMARK_TYPE'
        assert code(remarkType='glowing') == 'INVALID_REMARK_TYPE'
        assert code(teacherId=999) == 'TEACHER_NOT_FOUND'
        assert code(studentId=999) == 'STUDENT_NOT_FOUND'
        assert code(subjectId=999) == 'SUBJECT_NOT_FOUND'


class TestTeacherLeave:
    def test_apply_notifies_admins(self, client, make_teacher):
        teacher_id = make_teacher()

        response = client.post('/api/teacher-leave-requests', json={
            'teacherId': teacher_id, 'startDate': '2024-10-07', 'endDate': '2024-10-09', 'reason': 'Family function',
        })

        assert response.status_code == 201
        leave = response.get_json()
        assert leave['status'] == 'pending'
        assert leave['totalDays'] == 3
        assert _notification_titles() == ['Leave Request']

    def test_leave_validation(self, client, make_teacher):
        teacher_id = make_teacher()
        base = {'teacherId': teacher_id, 'startDate': '2024-10-07', 'endDate': '2024-10-09', 'reason': 'Fever'}

        def code(**overrides):
            payload = {k: v for k, v in dict(base, **overrides).items() if v is not None}
            return client.post('/api/teacher-leave-requests', json=payload).get_json()['code']

        assert code(teacherId=None) == 'MISSING_TEACHER_ID'
        assert code(startDate=None) == 'MISSING_START_DATE'
        assert code(endDate=None) == 'MISSING_END_DATE'
        assert code(reason='') == 'MISSING_REASON'
        assert code(startDate='07-10-2024') == 'INVALID_START_DATE'
        assert code(endDate='2024-10-01') == 'INVALID_DATE_RANGE'
        assert code(teacherId=999) == 'TEACHER_NOT_FOUND'

    def test_approval_notifies_teacher(self, client, make_teacher):
        teacher_id = make_teacher()
        leave_id = client.post('/api/teacher-leave-requests', json={
            'teacherId': teacher_id, 'startDate': '2024-10-07', 'endDate': '2024-10-07', 'reason': 'Fever',
        }).get_json()['id']

        response = client.put(f'/api/teacher-leave-requests?id={leave_id}', json={'status': 'approved'})
        assert response.get_json()['code'] == 'MISSING_REVIEWER'

        response = client.put(f'/api/teacher-leave-requests?id={leave_id}', json={'status': 'approved', 'reviewedBy': 1})

        assert response.status_code == 200
        body = response.get_json()
        assert body['status'] == 'approved'
        assert body['reviewedBy'] == 1
        assert body['reviewedAt'] is not None
        assert _notification_titles(_teacher_user(teacher_id)) == ['Leave Approved']

        pending = client.get('/api/teacher-leave-requests?status=pending').get_json()
        assert pending == []

    def test_processed_request_cannot_be_deleted(self, client, make_teacher):
        teacher_id = make_teacher()
        payload = {'teacherId': teacher_id, 'startDate': '2024-10-07', 'endDate': '2024-10-07', 'reason': 'Fever'}
        pending_id = client.post('/api/teacher-leave-requests', json=payload).get_json()['id']
        rejected_id = client.post('/api/teacher-leave-requests', json=payload).get_json()['id']
        client.put(f'/api/teacher-leave-requests?id={rejected_id}', json={'status': 'rejected', 'reviewedBy': 1})

        response = client.delete(f'/api/teacher-leave-requests?id={rejected_id}')
        assert response.status_code == 400
        assert response.get_json()['code'] == 'CANNOT_DELETE_PROCESSED_REQUEST'

        assert client.delete(f'/api/teacher-leave-requests?id={pending_id}').status_code == 200
        response = client.get(f'/api/teacher-leave-requests?id={pending_id}')
        assert response.get_json()['code'] == 'LEAVE_REQUEST_NOT_FOUND'

    def test_teacher_with_leave_history_cannot_be_deleted(self, client, make_teacher):
        teacher_id = make_teacher()
        client.post('/api/teacher-leave-requests', json={
            'teacherId': teacher_id, 'startDate': '2024-10-07', 'endDate': '2024-10-07', 'reason': 'Fever',
        })

        response = client.delete(f'/api/teachers?id={teacher_id}')

        assert response.status_code == 400
        assert response.get_json()['code'] == 'TEACHER_IN_USE'

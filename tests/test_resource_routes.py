from database import get_session
from fee_models import FeeInvoice
from fee_helpers import setup_emi_plan
from models import RoleEnum


def _create_year(client, name='2024-2025', is_current=False):
    return client.post('/api/academic-years', json={
        'yearName': name, 'startDate': '2024-04-01', 'endDate': '2025-03-31', 'isCurrent': is_current
    })


class TestAcademicStructure:
    def test_academic_year_lifecycle(self, client):
        response = _create_year(client)
        assert response.status_code == 201
        year_id = response.get_json()['id']

        response = client.put(f'/api/academic-years?id={year_id}', json={'yearName': '2024-25'})
        assert response.get_json()['yearName'] == '2024-25'

        response = client.delete(f'/api/academic-years?id={year_id}')
        assert response.status_code == 200
        assert response.get_json()['message'] == 'Academic year deleted successfully'

        response = client.get(f'/api/academic-years?id={year_id}')
        assert response.status_code == 404
        assert response.get_json()['code'] == 'ACADEMIC_YEAR_NOT_FOUND'

    def test_only_one_current_year(self, client):
        first = _create_year(client, '2023-2024', is_current=True).get_json()['id']
        second = _create_year(client, '2024-2025', is_current=True).get_json()['id']

        current = client.get('/api/academic-years?isCurrent=true').get_json()

        assert [y['id'] for y in current] == [second]
        assert client.get(f'/api/academic-years?id={first}').get_json()['isCurrent'] is False

    def test_date_range_checked(self, client):
        response = client.post('/api/academic-years', json={
            'yearName': 'bad', 'startDate': '2025-03-31', 'endDate': '2024-04-01'
        })

        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_DATE_RANGE'

    def test_class_requires_existing_year(self, client):
        response = client.post('/api/classes', json={'className': 'Grade 5', 'academicYearId': 42})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'ACADEMIC_YEAR_NOT_FOUND'

    def test_duplicate_class_and_section(self, client):
        year_id = _create_year(client).get_json()['id']
        class_id = client.post('/api/classes', json={'className': 'Grade 5', 'academicYearId': year_id}).get_json()['id']

        response = client.post('/api/classes', json={'className': 'Grade 5', 'academicYearId': year_id})
        assert response.get_json()['code'] == 'DUPLICATE_CLASS'

        assert client.post('/api/sections', json={'sectionName': 'A', 'classId': class_id}).status_code == 201
        response = client.post('/api/sections', json={'sectionName': 'A', 'classId': class_id})
        assert response.get_json()['code'] == 'DUPLICATE_SECTION'

        response = client.delete(f'/api/classes?id={class_id}')
        assert response.get_json()['code'] == 'CLASS_IN_USE'
        response = client.delete(f'/api/academic-years?id={year_id}')
        assert response.get_json()['code'] == 'ACADEMIC_YEAR_IN_USE'

    def test_subject_code_uppercased_and_unique(self, client):
        year_id = _create_year(client).get_json()['id']
        class_id = client.post('/api/classes', json={'className': 'Grade 5', 'academicYearId': year_id}).get_json()['id']

        response = client.post('/api/subjects', json={'subjectName': 'Maths', 'subjectCode': 'math5', 'classId': class_id})
        assert response.status_code == 201
        assert response.get_json()['subjectCode'] == 'MATH5'

        response = client.post('/api/subjects', json={'subjectName': 'Algebra', 'subjectCode': 'MATH5', 'classId': class_id})
        assert response.get_json()['code'] == 'DUPLICATE_SUBJECT_CODE'


class TestListing:
    def test_limit_is_capped(self, client):
        for i in range(105):
            _create_year(client, f'Y{i:03d}')

        years = client.get('/api/academic-years?limit=500').get_json()

        assert len(years) == 100
        assert years[0]['yearName'] == 'Y104'

    def test_default_page_and_offset(self, client):
        for i in range(12):
            _create_year(client, f'Y{i:03d}')

        assert len(client.get('/api/academic-years').get_json()) == 10
        page = client.get('/api/academic-years?limit=5&offset=10').get_json()
        assert [y['yearName'] for y in page] == ['Y001', 'Y000']

    def test_bad_pagination(self, client):
        assert client.get('/api/academic-years?limit=0').get_json()['code'] == 'INVALID_LIMIT'
        assert client.get('/api/academic-years?limit=abc').get_json()['code'] == 'INVALID_LIMIT'
        assert client.get('/api/academic-years?offset=-1').get_json()['code'] == 'INVALID_OFFSET'

    def test_invalid_id(self, client):
        response = client.get('/api/academic-years?id=abc')

        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVALID_ID'

    def test_update_requires_id(self, client):
        response = client.put('/api/academic-years', json={'yearName': 'x'})

        assert response.get_json()['code'] == 'MISSING_ID'


class TestPeople:
    def test_user_validation(self, client):
        payload = {'email': 'Teacher@School.test', 'password': 'secret1', 'role': 'teacher', 'fullName': 'Neha Iyer'}

        response = client.post('/api/users', json=payload)
        assert response.status_code == 201
        body = response.get_json()
        assert body['email'] == 'teacher@school.test'
        assert 'passwordHash' not in body and 'password_hash' not in body

        assert client.post('/api/users', json=payload).get_json()['code'] == 'DUPLICATE_EMAIL'
        assert client.post('/api/users', json=dict(payload, email='a@b.test', password='123')).get_json()['code'] == 'INVALID_PASSWORD'
        assert client.post('/api/users', json=dict(payload, email='c@d.test', role='janitor')).get_json()['code'] == 'INVALID_ROLE'
        assert client.post('/api/users', json={'email': 'x@y.test'}).get_json()['code'] == 'MISSING_REQUIRED_FIELDS'

    def test_student_and_parent_link(self, client, make_user):
        student_user = make_user(RoleEnum.STUDENT, full_name='Asha Verma')
        parent_user = make_user(RoleEnum.PARENT, full_name='Ravi Verma', phone='9222222222')

        response = client.post('/api/students', json={
            'userId': student_user, 'admissionNumber': 'ADM100', 'parentMobileNumber': '98765 43210',
            'dateOfBirth': '2012-05-14',
        })
        assert response.status_code == 201
        student = response.get_json()
        assert student['parentMobileNumber'] == '9876543210'
        assert student['dateOfBirth'] == '2012-05-14'
        assert student['fullName'] == 'Asha Verma'

        response = client.post('/api/students', json={'userId': student_user, 'admissionNumber': 'ADM100'})
        assert response.get_json()['code'] == 'DUPLICATE_ADMISSION_NUMBER'

        parent = client.post('/api/parents', json={'userId': parent_user, 'relation': 'Father'}).get_json()
        assert parent['relation'] == 'father'
        assert client.post('/api/parents', json={'userId': parent_user}).get_json()['code'] == 'DUPLICATE_PARENT'

        link = {'studentId': student['id'], 'parentId': parent['id'], 'isPrimary': True}
        assert client.post('/api/student-parents', json=link).status_code == 201
        assert client.post('/api/student-parents', json=link).get_json()['code'] == 'DUPLICATE_STUDENT_PARENT'

    def test_teacher_employee_id_unique(self, client, make_user):
        user_id = make_user(RoleEnum.TEACHER)

        response = client.post('/api/teachers', json={'userId': user_id, 'employeeId': 'EMP-7', 'salary': '42000.50'})
        assert response.status_code == 201
        assert response.get_json()['salary'] == 42000.5

        response = client.post('/api/teachers', json={'userId': user_id, 'employeeId': 'EMP-7'})
        assert response.get_json()['code'] == 'DUPLICATE_EMPLOYEE_ID'

        response = client.post('/api/teachers', json={'userId': 999, 'employeeId': 'EMP-8'})
        assert response.get_json()['code'] == 'USER_NOT_FOUND'

    def test_student_with_invoices_cannot_be_deleted(self, client, make_student, make_invoice):
        student_id = make_student()
        make_invoice('1000.00', student_id=student_id)

        response = client.delete(f'/api/students?id={student_id}')

        assert response.status_code == 400
        body = response.get_json()
        assert body['code'] == 'STUDENT_IN_USE'
        assert 'fee invoices' in body['error']
        assert client.get(f'/api/students?id={student_id}').status_code == 200

    def test_student_without_records_can_be_deleted(self, client, make_student, link_parent):
        student_id = make_student()
        link_parent(student_id, '9111111111')

        response = client.delete(f'/api/students?id={student_id}')

        assert response.status_code == 200
        assert client.get(f'/api/students?id={student_id}').get_json()['code'] == 'STUDENT_NOT_FOUND'

    def test_user_with_profile_cannot_be_deleted(self, client, make_student):
        student_id = make_student()
        user_id = client.get(f'/api/students?id={student_id}').get_json()['userId']

        response = client.delete(f'/api/users?id={user_id}')

        assert response.status_code == 400
        assert response.get_json()['code'] == 'USER_IN_USE'

    def test_user_delete_takes_notifications_along(self, client, make_user):
        user_id = make_user(RoleEnum.ADMIN, full_name='Office Admin')
        client.post('/api/notifications', json={
            'recipientId': user_id, 'title': 'Welcome', 'message': 'Account created', 'type': 'general'
        })

        response = client.delete(f'/api/users?id={user_id}')

        assert response.status_code == 200
        assert client.get(f'/api/notifications?recipientId={user_id}').get_json() == []


class TestFeeInvoices:
    def test_create_derives_due_and_status(self, client, make_student):
        student_id = make_student()

        response = client.post('/api/fee-invoices', json={
            'studentId': student_id, 'invoiceNumber': 'INV-1', 'totalAmount': 5000,
            'paidAmount': 1000, 'dueDate': '2024-08-10',
        })

        assert response.status_code == 201
        body = response.get_json()
        assert body['dueAmount'] == 4000.0
        assert body['status'] == 'partial'

    def test_inconsistent_due_amount_rejected(self, client, make_student):
        student_id = make_student()

        response = client.post('/api/fee-invoices', json={
            'studentId': student_id, 'invoiceNumber': 'INV-1', 'totalAmount': 5000,
            'paidAmount': 1000, 'dueAmount': 3000, 'dueDate': '2024-08-10',
        })

        assert response.get_json()['code'] == 'INVALID_AMOUNTS'

    def test_duplicate_invoice_number(self, client, make_student):
        student_id = make_student()
        payload = {'studentId': student_id, 'invoiceNumber': 'INV-1', 'totalAmount': 5000, 'dueDate': '2024-08-10'}
        client.post('/api/fee-invoices', json=payload)

        assert client.post('/api/fee-invoices', json=payload).get_json()['code'] == 'DUPLICATE_INVOICE_NUMBER'

    def test_update_recomputes_balance(self, client, make_invoice):
        invoice_id = make_invoice('5000.00')

        response = client.put(f'/api/fee-invoices?id={invoice_id}', json={'paidAmount': 5000})

        body = response.get_json()
        assert body['dueAmount'] == 0.0
        assert body['status'] == 'paid'
        assert client.put(f'/api/fee-invoices?id={invoice_id}', json={}).get_json()['code'] == 'NO_UPDATES'

    def test_amounts_locked_once_payments_exist(self, client, make_invoice):
        invoice_id = make_invoice('5000.00')
        client.post('/api/fee-payments', json={
            'invoiceId': invoice_id, 'amount': 2000, 'paymentMethod': 'cash',
            'paymentDate': '2024-07-01', 'paymentStatus': 'completed',
        })

        response = client.put(f'/api/fee-invoices?id={invoice_id}', json={'totalAmount': 9000})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVOICE_AMOUNTS_LOCKED'
        invoice = client.get(f'/api/fee-invoices?id={invoice_id}').get_json()
        assert invoice['totalAmount'] == 5000.0
        assert invoice['dueAmount'] == 3000.0
        response = client.put(f'/api/fee-invoices?id={invoice_id}', json={'dueDate': '2024-09-30'})
        assert response.status_code == 200

    def test_amounts_locked_once_installment_plan_exists(self, client, make_invoice):
        invoice_id = make_invoice('6200.00')
        session = get_session()
        try:
            setup_emi_plan(session, session.get(FeeInvoice, invoice_id))
            session.commit()
        finally:
            session.close()

        response = client.put(f'/api/fee-invoices?id={invoice_id}', json={'paidAmount': 6200})

        assert response.status_code == 400
        assert response.get_json()['code'] == 'INVOICE_AMOUNTS_LOCKED'

    def test_filter_by_student_and_status(self, client, make_student, make_invoice):
        student_id = make_student('ADM900')
        mine = make_invoice('1000.00', student_id=student_id)
        make_invoice('1000.00')

        invoices = client.get(f'/api/fee-invoices?studentId={student_id}&status=pending').get_json()

        assert [i['id'] for i in invoices] == [mine]

    def test_delete_invoice(self, client, make_invoice):
        invoice_id = make_invoice()

        response = client.delete(f'/api/fee-invoices?id={invoice_id}')

        assert response.status_code == 200
        assert response.get_json()['deleted']['id'] == invoice_id
        assert client.get(f'/api/fee-invoices?id={invoice_id}').status_code == 404


class TestFeePayments:
    def test_cash_payment_moves_balance(self, client, make_invoice):
        invoice_id = make_invoice('5000.00')

        response = client.post('/api/fee-payments', json={
            'invoiceId': invoice_id, 'amount': 2000, 'paymentMethod': 'cash',
            'paymentDate': '2024-07-01', 'paymentStatus': 'completed', 'transactionId': 'RCPT-1',
        })

        assert response.status_code == 201
        invoice = client.get(f'/api/fee-invoices?id={invoice_id}').get_json()
        assert invoice['paidAmount'] == 2000.0
        assert invoice['status'] == 'partial'

    def test_payment_validation_codes(self, client, make_invoice):
        invoice_id = make_invoice('5000.00')
        base = {'invoiceId': invoice_id, 'amount': 100, 'paymentMethod': 'cash',
                'paymentDate': '2024-07-01', 'paymentStatus': 'completed'}

        def code(**overrides):
            payload = dict(base, **overrides)
            payload = {k: v for k, v in payload.items() if v is not None}
            return client.post('/api/fee-payments', json=payload).get_json()['code']

        assert code(invoiceId=None) == 'MISSING_INVOICE_ID'
        assert code(amount=-5) == 'INVALID_AMOUNT'
        assert code(paymentMethod=None) == 'MISSING_PAYMENT_METHOD'
        assert code(paymentMethod='bitcoin') == 'INVALID_PAYMENT_METHOD'
        assert code(paymentDate=None) == 'MISSING_PAYMENT_DATE'
        assert code(paymentStatus=None) == 'MISSING_PAYMENT_STATUS'
        assert code(paymentStatus='lost') == 'INVALID_PAYMENT_STATUS'
        assert code(invoiceId=999) == 'INVOICE_NOT_FOUND'

    def test_numeric_transaction_id_stored_as_text(self, client, make_invoice):
        invoice_id = make_invoice('5000.00')

        response = client.post('/api/fee-payments', json={
            'invoiceId': invoice_id, 'amount': 500, 'paymentMethod': 'cheque',
            'paymentDate': '2024-07-01', 'paymentStatus': 'completed', 'transactionId': 104522,
        })

        assert response.status_code == 201
        assert response.get_json()['transactionId'] == '104522'

    def test_payments_are_append_only(self, client):
        assert client.put('/api/fee-payments?id=1', json={'amount': 1}).status_code == 405
        assert client.delete('/api/fee-payments?id=1').status_code == 405


class TestFeeTemplates:
    def test_template_lifecycle(self, client):
        year_id = _create_year(client).get_json()['id']
        class_id = client.post('/api/classes', json={'className': 'Grade 5', 'academicYearId': year_id}).get_json()['id']

        response = client.post('/api/fee-templates', json={
            'templateName': 'Grade 5 Tuition', 'classId': class_id, 'amount': 4500,
            'feeType': 'tuition', 'frequency': 'quarterly',
        })
        assert response.status_code == 201
        template = response.get_json()
        assert template['amount'] == 4500.0
        assert template['frequency'] == 'quarterly'

        response = client.put(f"/api/fee-templates?id={template['id']}", json={'amount': 4800, 'classId': None})
        assert response.get_json()['amount'] == 4800.0
        assert response.get_json()['classId'] is None

        assert [t['id'] for t in client.get('/api/fee-templates?frequency=quarterly&search=tuition').get_json()] == [template['id']]
        assert client.get('/api/fee-templates?frequency=monthly').get_json() == []

        assert client.delete(f"/api/fee-templates?id={template['id']}").status_code == 200
        assert client.get(f"/api/fee-templates?id={template['id']}").get_json()['code'] == 'FEE_TEMPLATE_NOT_FOUND'

    def test_template_validation(self, client):
        base = {'templateName': 'Bus', 'amount': 900, 'feeType': 'transport', 'frequency': 'monthly'}

        def code(**overrides):
            payload = {k: v for k, v in dict(base, **overrides).items() if v is not None}
            return client.post('/api/fee-templates', json=payload).get_json()['code']

        assert code(templateName=None) == 'MISSING_TEMPLATE_NAME'
        assert code(amount=None) == 'MISSING_AMOUNT'
        assert code(amount='free') == 'INVALID_AMOUNT'
        assert code(feeType='  ') == 'MISSING_FEE_TYPE'
        assert code(frequency=None) == 'MISSING_FREQUENCY'
        assert code(frequency='weekly') == 'INVALID_FREQUENCY'
        assert code(classId='x') == 'INVALID_CLASS_ID'
        assert code(classId=999) == 'CLASS_NOT_FOUND'


class TestFeeConcessions:
    def test_concession_lifecycle(self, client, make_student):
        student_id = make_student()

        response = client.post('/api/fee-concessions', json={
            'studentId': student_id, 'concessionType': 'sibling', 'concessionPercentage': 10,
            'amountWaived': 750, 'reason': 'Younger sibling enrolled', 'approvedBy': 1,
        })
        assert response.status_code == 201
        concession = response.get_json()
        assert concession['concessionPercentage'] == 10.0
        assert concession['approvedBy'] == 1
        assert concession['approvedAt'] is not None

        response = client.put(f"/api/fee-concessions?id={concession['id']}", json={'approvedBy': None})
        assert response.get_json()['approvedAt'] is None

        listed = client.get(f'/api/fee-concessions?studentId={student_id}&concessionType=sibling').get_json()
        assert [c['id'] for c in listed] == [concession['id']]

        response = client.delete(f'/api/students?id={student_id}')
        assert response.get_json()['code'] == 'STUDENT_IN_USE'

        assert client.delete(f"/api/fee-concessions?id={concession['id']}").status_code == 200
        assert client.get(f"/api/fee-concessions?id={concession['id']}").get_json()['code'] == 'CONCESSION_NOT_FOUND'

    def test_concession_validation(self, client, make_student):
        student_id = make_student()
        base = {'studentId': student_id, 'concessionType': 'merit', 'concessionPercentage': 25,
                'amountWaived': 1000, 'reason': 'Topped the class'}

        def code(**overrides):
            payload = {k: v for k, v in dict(base, **overrides).items() if v is not None}
            return client.post('/api/fee-concessions', json=payload).get_json()['code']

        assert code(studentId=None) == 'MISSING_STUDENT_ID'
        assert code(concessionType=None) == 'MISSING_CONCESSION_TYPE'
        assert code(concessionPercentage=None) == 'MISSING_CONCESSION_PERCENTAGE'
        assert code(amountWaived=None) == 'MISSING_AMOUNT_WAIVED'
        assert code(reason=None) == 'MISSING_REASON'
        assert code(concessionPercentage='half') == 'INVALID_CONCESSION_PERCENTAGE'
        assert code(concessionPercentage=120) == 'INVALID_PERCENTAGE_RANGE'
        assert code(amountWaived=-1) == 'INVALID_AMOUNT_WAIVED'
        assert code(approvedBy=999) == 'APPROVER_NOT_FOUND'
        assert code(studentId=999) == 'STUDENT_NOT_FOUND'


class TestNotificationsAndSettings:
    def test_notification_crud(self, client):
        response = client.post('/api/notifications', json={
            'recipientId': 1, 'title': 'Holiday', 'message': 'School closed on Friday', 'type': 'general'
        })
        assert response.status_code == 201
        notification_id = response.get_json()['id']

        response = client.put(f'/api/notifications?id={notification_id}', json={'isRead': True})
        assert response.get_json()['isRead'] is True

        unread = client.get('/api/notifications?recipientId=1&isRead=false').get_json()
        assert unread == []

        response = client.post('/api/notifications', json={
            'recipientId': 999, 'title': 'x', 'message': 'y', 'type': 'general'
        })
        assert response.get_json()['code'] == 'RECIPIENT_NOT_FOUND'

    def test_settings_upsert(self, client):
        response = client.put('/api/settings', json={'key': 'school_name', 'value': 'Green Valley'})
        assert response.status_code == 201

        response = client.put('/api/settings', json={'key': 'school_name', 'value': 'Green Valley High'})
        assert response.status_code == 200

        assert client.get('/api/settings?key=school_name').get_json()['value'] == 'Green Valley High'
        assert client.delete('/api/settings?key=school_name').status_code == 200
        assert client.get('/api/settings?key=school_name').get_json()['code'] == 'SETTING_NOT_FOUND'


def test_health(client):
    response = client.get('/api/health')

    assert response.status_code == 200


def test_unknown_route_is_json(client):
    response = client.get('/api/nope')

    assert response.status_code == 404
    assert response.get_json()['code'] == 'NOT_FOUND'

"""Tests for introdesk.routes.attribution -- owner overrides, run intake, owner sync."""


class TestChangeOwner:

    def test_locked_owner_needs_reason(self, client, add_booking):
        bid = add_booking(intro_owner='Lauren', intro_owner_locked=True)

        resp = client.post(f'/api/bookings/{bid}/owner', json={'owner': 'Dana'})

        assert resp.status_code == 400
        assert 'reason' in resp.get_json()['error']

    def test_override_with_reason(self, client, add_booking):
        bid = add_booking(intro_owner='Lauren', intro_owner_locked=True)

        resp = client.post(f'/api/bookings/{bid}/owner',
                           json={'owner': 'Dana', 'reason': 'covered the class', 'editor': 'Grace'})

        assert resp.status_code == 200
        data = resp.get_json()
        assert data['intro_owner'] == 'Dana'
        assert data['intro_owner_locked'] is True
        assert data['edit_reason'] == 'covered the class'

    def test_unknown_booking(self, client):
        resp = client.post('/api/bookings/nope/owner', json={'owner': 'Dana', 'reason': 'x'})
        assert resp.status_code == 404


class TestCreateRun:

    def test_logs_run_and_claims_owner(self, client, add_booking):
        bid = add_booking()

        resp = client.post('/api/runs', json={
            'member_name': 'Jane Doe', 'linked_booking_id': bid, 'run_date': '2026-03-01',
            'result': 'Follow-up needed', 'ran_by': 'Dana', 'commission_amount': '0',
        })

        assert resp.status_code == 201
        data = resp.get_json()
        assert data['run']['run_date'] == '2026-03-01'
        assert data['run']['commission_amount'] == 0.0
        assert data['ownership']['state'] == 'complete'
        assert data['ownership']['intro_owner'] == 'Dana'

    def test_missing_member_name(self, client):
        resp = client.post('/api/runs', json={'result': 'Closed'})
        assert resp.status_code == 400

    def test_bad_commission(self, client):
        resp = client.post('/api/runs', json={'member_name': 'Jane Doe', 'commission_amount': 'lots'})
        assert resp.status_code == 400

    def test_unknown_booking(self, client):
        resp = client.post('/api/runs', json={'member_name': 'Jane Doe', 'linked_booking_id': 'nope'})
        assert resp.status_code == 404


class TestSyncOwner:

    def test_sync(self, client, add_booking, add_run):
        bid = add_booking()
        rid = add_run(linked_booking_id=bid, ran_by='Dana')
        resp = client.post(f'/api/runs/{rid}/sync-owner')
        assert resp.status_code == 200
        assert resp.get_json()['status'] == 'updated'

    def test_locked_conflict_409(self, client, add_booking, add_run):
        bid = add_booking(intro_owner='Lauren', intro_owner_locked=True)
        rid = add_run(linked_booking_id=bid, ran_by='Dana')
        resp = client.post(f'/api/runs/{rid}/sync-owner')
        assert resp.status_code == 409
        assert resp.get_json()['previous_owner'] == 'Lauren'

    def test_unknown_run(self, client):
        assert client.post('/api/runs/nope/sync-owner').status_code == 404

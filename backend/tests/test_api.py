from conftest import default_questions, login


def _create_quiz(test_client, questions=None, title='Capitals'):
    res = test_client.post('/api/quizzes', json={
        'title': title,
        'description': 'Warm-up',
        'questions': default_questions() if questions is None else questions,
    })
    assert res.status_code == 201
    return res.get_json()


def _create_session(owner_client):
    quiz = _create_quiz(owner_client)
    res = owner_client.post('/api/sessions', json={'quiz_id': quiz['id']})
    assert res.status_code == 201
    return res.get_json()


def _join(test_client, pin, name):
    return test_client.post('/api/sessions/join', json={'pin': pin, 'player_name': name})


def test_index(client):
    res = client.get('/')
    assert res.status_code == 200
    assert 'message' in res.get_json()


def test_register_login_me_logout(client):
    res = client.post('/auth/register', json={
        'email': 'New@Example.com', 'password': 'secret', 'full_name': 'New Teacher',
    })
    assert res.status_code == 201
    assert res.get_json()['email'] == 'new@example.com'
    assert client.get('/auth/me').get_json()['role'] == 'teacher'

    assert client.post('/auth/logout').status_code == 200
    assert client.get('/auth/me').status_code == 401

    assert client.post('/auth/login', json={'email': 'new@example.com', 'password': 'wrong'}).status_code == 401
    login(client, 'new@example.com', 'secret')
    assert client.get('/auth/me').status_code == 200


def test_register_rejects_duplicates_and_bad_roles(client, teacher):
    res = client.post('/auth/register', json={'email': 'teacher@example.com', 'password': 'x'})
    assert res.status_code == 409
    res = client.post('/auth/register', json={'email': 'a@b.c', 'password': 'x', 'role': 'admin'})
    assert res.status_code == 400
    assert client.post('/auth/register', json={'email': 'a@b.c'}).status_code == 400


def test_login_required_replies_with_json(client):
    res = client.post('/api/sessions', json={'quiz_id': 1})
    assert res.status_code == 401
    assert res.get_json()['code'] == 'unauthorized'


def test_quiz_crud(owner_client):
    quiz = _create_quiz(owner_client)
    assert quiz['question_count'] == 3
    assert quiz['questions'][1]['question_type'] == 'true_false'

    listed = owner_client.get('/api/quizzes').get_json()
    assert [q['id'] for q in listed] == [quiz['id']]

    res = owner_client.put(f"/api/quizzes/{quiz['id']}", json={
        'title': 'Renamed',
        'questions': [{'question_text': 'Only one', 'question_type': 'true_false', 'correct_answer': 1}],
    })
    assert res.status_code == 200
    updated = res.get_json()
    assert updated['title'] == 'Renamed'
    assert updated['questions'][0]['options'] == ['True', 'False']
    assert updated['questions'][0]['time_limit'] == 30
    assert updated['questions'][0]['points'] == 100

    assert owner_client.delete(f"/api/quizzes/{quiz['id']}").status_code == 200
    assert owner_client.get(f"/api/quizzes/{quiz['id']}").status_code == 404


def test_quiz_validation(owner_client):
    res = owner_client.post('/api/quizzes', json={'title': '', 'questions': default_questions()})
    assert res.status_code == 400
    res = owner_client.post('/api/quizzes', json={'title': 'Empty', 'questions': []})
    assert res.status_code == 400
    res = owner_client.post('/api/quizzes', json={'title': 'Bad', 'questions': [
        {'question_text': 'Q', 'options': ['a', 'b'], 'correct_answer': 5},
    ]})
    assert res.status_code == 400
    assert res.get_json()['field'] == 'correct_answer'
    res = owner_client.post('/api/quizzes', json={'title': 'Bad', 'questions': [
        {'question_text': 'Q', 'options': ['a', 'b'], 'time_limit': 0},
    ]})
    assert res.status_code == 400


def test_quizzes_are_private_to_their_owner(flask_app, owner_client, other_teacher):
    quiz = _create_quiz(owner_client)
    other = flask_app.test_client()
    login(other, 'other@example.com')
    assert other.get(f"/api/quizzes/{quiz['id']}").status_code == 404
    assert other.get('/api/quizzes').get_json() == []
    res = other.post('/api/sessions', json={'quiz_id': quiz['id']})
    assert res.status_code == 403
    assert res.get_json()['code'] == 'forbidden'


def test_students_cannot_author(client):
    client.post('/auth/register', json={'email': 's@example.com', 'password': 'x', 'role': 'student'})
    assert client.get('/api/quizzes').status_code == 403


def test_quiz_locked_while_session_open(owner_client):
    game = _create_session(owner_client)
    quiz_id = game['quiz']['id']
    res = owner_client.put(f'/api/quizzes/{quiz_id}', json={'title': 'Nope'})
    assert res.status_code == 409
    assert owner_client.delete(f'/api/quizzes/{quiz_id}').status_code == 409

    owner_client.post(f"/api/sessions/{game['id']}/end")
    assert owner_client.put(f'/api/quizzes/{quiz_id}', json={'title': 'Now ok'}).status_code == 200
    res = owner_client.put(f'/api/quizzes/{quiz_id}', json={'questions': default_questions()})
    assert res.status_code == 409


def test_create_session_requires_playable_quiz(owner_client):
    assert owner_client.post('/api/sessions', json={}).status_code == 400
    res = owner_client.post('/api/sessions', json={'quiz_id': 999})
    assert res.status_code == 404


def test_full_game_over_http(client, owner_client, clock):
    game = _create_session(owner_client)
    assert game['status'] == 'waiting'
    assert game['current_question'] == -1

    ana = _join(client, game['pin'], 'Ana')
    assert ana.status_code == 201
    ana = ana.get_json()
    ben = _join(client, game['pin'], 'Ben').get_json()

    res = _join(client, game['pin'], 'Ana')
    assert res.status_code == 409
    assert res.get_json()['code'] == 'name_taken'

    started = owner_client.post(f"/api/sessions/{game['id']}/start").get_json()
    assert started['status'] == 'active'
    assert started['question']['correct_answer'] == 2
    assert started['question_deadline'] == clock.t + 30

    player_view = client.get(f"/api/sessions/{game['id']}/state").get_json()
    assert 'correct_answer' not in player_view['question']

    clock.advance(10)
    res = client.post(f"/api/sessions/{game['id']}/answers", json={
        'player_session_id': ana['id'], 'option_index': 2, 'client_time': 9950,
    })
    assert res.status_code == 201
    assert res.get_json()['points_earned'] == 83

    res = client.post(f"/api/sessions/{game['id']}/answers", json={
        'player_session_id': ana['id'], 'option_index': 1,
    })
    assert res.status_code == 409
    assert res.get_json()['code'] == 'already_answered'

    clock.advance(25)
    res = client.post(f"/api/sessions/{game['id']}/answers", json={
        'player_session_id': ben['id'], 'option_index': 2,
    })
    assert res.status_code == 410
    body = res.get_json()
    assert body['code'] == 'expired'
    assert body['answer']['points_earned'] == 0

    for _ in range(3):
        state = owner_client.post(f"/api/sessions/{game['id']}/advance").get_json()
    assert state['status'] == 'finished'
    assert state['summary']['reason'] == 'completed'
    assert state['leaderboard'][0]['player_name'] == 'Ana'

    res = owner_client.post(f"/api/sessions/{game['id']}/advance")
    assert res.status_code == 409
    assert res.get_json()['code'] == 'session_closed'

    player = client.get(f"/api/sessions/{game['id']}/players/{ana['id']}").get_json()
    assert player['score'] == 83
    assert [a['points_earned'] for a in player['answers']] == [83]

    stats = owner_client.get(f"/api/sessions/{game['id']}/stats").get_json()
    assert stats['total_players'] == 2
    assert stats['question_stats'][0]['total_responses'] == 1
    assert stats['question_stats'][1]['average_response_time'] is None


def test_join_errors(client, owner_client):
    game = _create_session(owner_client)
    res = _join(client, '12ab56', 'Ana')
    assert res.status_code == 400
    assert res.get_json()['field'] == 'pin'
    assert _join(client, game['pin'], '').status_code == 400
    other = '000000' if game['pin'] != '000000' else '000001'
    res = _join(client, other, 'Ana')
    assert res.status_code == 404
    assert res.get_json()['code'] == 'not_found'


def test_start_without_players_is_conflict(owner_client):
    game = _create_session(owner_client)
    res = owner_client.post(f"/api/sessions/{game['id']}/start")
    assert res.status_code == 409
    assert res.get_json()['code'] == 'conflict'


def test_owner_only_controls(flask_app, client, owner_client, other_teacher):
    game = _create_session(owner_client)
    _join(client, game['pin'], 'Ana')
    other = flask_app.test_client()
    login(other, 'other@example.com')
    for action in ('start', 'advance', 'end'):
        res = other.post(f"/api/sessions/{game['id']}/{action}")
        assert res.status_code == 403
    assert other.get(f"/api/sessions/{game['id']}/stats").status_code == 403


def test_unknown_session_and_player(client, owner_client):
    assert client.get('/api/sessions/4242/state').status_code == 404
    game = _create_session(owner_client)
    assert client.get(f"/api/sessions/{game['id']}/players/4242").status_code == 404


def test_answer_validation(client, owner_client, clock):
    game = _create_session(owner_client)
    ana = _join(client, game['pin'], 'Ana').get_json()
    owner_client.post(f"/api/sessions/{game['id']}/start")
    res = client.post(f"/api/sessions/{game['id']}/answers", json={
        'player_session_id': ana['id'], 'option_index': 9,
    })
    assert res.status_code == 400
    assert res.get_json()['field'] == 'option_index'
    res = client.post(f"/api/sessions/{game['id']}/answers", json={
        'player_session_id': ana['id'], 'option_index': 'two',
    })
    assert res.status_code == 400


def test_end_from_waiting_closes_session(client, owner_client):
    game = _create_session(owner_client)
    ended = owner_client.post(f"/api/sessions/{game['id']}/end").get_json()
    assert ended['status'] == 'finished'
    assert ended['summary']['reason'] == 'ended'
    res = _join(client, game['pin'], 'Late')
    assert res.status_code == 404


def test_retried_advance_is_rejected(client, owner_client):
    game = _create_session(owner_client)
    _join(client, game['pin'], 'Ana')
    owner_client.post(f"/api/sessions/{game['id']}/start")

    first = owner_client.post(f"/api/sessions/{game['id']}/advance", json={'question_index': 0})
    assert first.status_code == 200
    retry = owner_client.post(f"/api/sessions/{game['id']}/advance", json={'question_index': 0})
    assert retry.status_code == 409
    assert retry.get_json()['code'] == 'conflict'
    state = client.get(f"/api/sessions/{game['id']}/state").get_json()
    assert state['current_question'] == 1

    res = owner_client.post(f"/api/sessions/{game['id']}/advance", json={'question_index': 'one'})
    assert res.status_code == 400
    assert res.get_json()['field'] == 'question_index'

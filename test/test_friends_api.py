import unittest

from support import ApiTestCase

from swipelist.models import Friendship

ALICE = "alice@example.com"
BOB = "bob@example.com"
CAROL = "carol@example.com"


class TestFriendsApi(ApiTestCase):
    def test_request_then_accept_by_reverse_request(self):
        resp = self.client.post("/api/friends", json={"friend_email": BOB}, headers=self.auth(ALICE))
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["message"], "Friend request sent")
        self.assertEqual(resp.json()["friendship"]["status"], "pending")

        incoming = self.client.get("/api/friends", params={"status": "pending"}, headers=self.auth(BOB)).json()
        self.assertEqual(len(incoming), 1)
        self.assertEqual(incoming[0]["direction"], "incoming")
        self.assertEqual(incoming[0]["friend"]["email"], ALICE)

        sent = self.client.get("/api/friends", params={"status": "sent"}, headers=self.auth(ALICE)).json()
        self.assertEqual(len(sent), 1)

        resp = self.client.post("/api/friends", json={"friend_email": ALICE}, headers=self.auth(BOB))
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["message"], "Friend request accepted")
        self.assertEqual(self.count_rows(Friendship), 1)

        friends = self.client.get("/api/friends", headers=self.auth(ALICE)).json()
        self.assertEqual(len(friends), 1)
        self.assertEqual(friends[0]["friend"], {"email": BOB, "display_name": "bob"})
        self.assertEqual(friends[0]["direction"], "outgoing")

    def test_duplicate_and_self_requests(self):
        resp = self.client.post("/api/friends", json={"friend_email": ALICE}, headers=self.auth(ALICE))
        self.assertEqual(resp.status_code, 400, resp.text)

        self.client.post("/api/friends", json={"friend_email": BOB}, headers=self.auth(ALICE))
        resp = self.client.post("/api/friends", json={"friend_email": "BOB@example.com"}, headers=self.auth(ALICE))
        self.assertEqual(resp.status_code, 400, resp.text)
        self.assertEqual(resp.json()["error"], "Friend request already sent")

        self.client.post("/api/friends", json={"friend_email": ALICE}, headers=self.auth(BOB))
        resp = self.client.post("/api/friends", json={"friend_email": BOB}, headers=self.auth(ALICE))
        self.assertEqual(resp.status_code, 400, resp.text)
        self.assertEqual(resp.json()["error"], "You are already friends with this user")
        self.assertEqual(self.count_rows(Friendship), 1)

    def test_invalid_friend_email(self):
        resp = self.client.post("/api/friends", json={"friend_email": "nope"}, headers=self.auth(ALICE))
        self.assertEqual(resp.status_code, 400, resp.text)
        self.assertEqual(resp.json()["error"], "Invalid friend_email")

    def test_patch_accept_and_reject(self):
        request_id = self.client.post(
            "/api/friends", json={"friend_email": BOB}, headers=self.auth(ALICE)
        ).json()["friendship"]["id"]

        resp = self.client.patch(f"/api/friends/{request_id}", json={"status": "accepted"}, headers=self.auth(ALICE))
        self.assertEqual(resp.status_code, 403, resp.text)

        resp = self.client.patch(f"/api/friends/{request_id}", json={"status": "accepted"}, headers=self.auth(BOB))
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json()["friendship"]["status"], "accepted")

        resp = self.client.patch(f"/api/friends/{request_id}", json={"status": "rejected"}, headers=self.auth(BOB))
        self.assertEqual(resp.status_code, 400, resp.text)

        carol_request = self.client.post(
            "/api/friends", json={"friend_email": BOB}, headers=self.auth(CAROL)
        ).json()["friendship"]["id"]
        resp = self.client.patch(f"/api/friends/{carol_request}", json={"status": "rejected"}, headers=self.auth(BOB))
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(self.count_rows(Friendship), 1)

        resp = self.client.patch("/api/friends/999", json={"status": "accepted"}, headers=self.auth(BOB))
        self.assertEqual(resp.status_code, 404, resp.text)

    def test_delete_friendship(self):
        self.befriend(ALICE, BOB)
        friendship_id = self.client.get("/api/friends", headers=self.auth(ALICE)).json()[0]["id"]

        resp = self.client.delete(f"/api/friends/{friendship_id}", headers=self.auth(CAROL))
        self.assertEqual(resp.status_code, 404, resp.text)

        resp = self.client.delete(f"/api/friends/{friendship_id}", headers=self.auth(BOB))
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(self.client.get("/api/friends", headers=self.auth(ALICE)).json(), [])

    def test_friend_watchlist_requires_accepted_friendship(self):
        self.client.post("/api/email-watchlist", json={"id": 27205, "title": "Inception"}, headers=self.auth(BOB))

        self.client.post("/api/friends", json={"friend_email": BOB}, headers=self.auth(ALICE))
        resp = self.client.get(f"/api/friends/{BOB}/watchlist", headers=self.auth(ALICE))
        self.assertEqual(resp.status_code, 403, resp.text)

        self.client.post("/api/friends", json={"friend_email": ALICE}, headers=self.auth(BOB))
        resp = self.client.get(f"/api/friends/{BOB}/watchlist", headers=self.auth(ALICE))
        self.assertEqual(resp.status_code, 200, resp.text)
        body = resp.json()
        self.assertEqual(body["friend"]["display_name"], "bob")
        self.assertEqual([item["movie_id"] for item in body["watchlist"]], [27205])


class TestFriendsWhoWatched(ApiTestCase):
    def test_no_friends_returns_empty_list(self):
        self.client.post("/api/watched", json={"id": 550, "title": "Fight Club"}, headers=self.auth(BOB))
        resp = self.client.get("/api/watched/550/friends", headers=self.auth(ALICE))
        self.assertEqual(resp.status_code, 200, resp.text)
        self.assertEqual(resp.json(), [])

    def test_only_accepted_friends_are_visible(self):
        self.befriend(ALICE, BOB)
        self.client.post("/api/friends", json={"friend_email": ALICE}, headers=self.auth(CAROL))

        self.client.post("/api/watched", json={"id": 550, "title": "Fight Club", "rating": 9}, headers=self.auth(BOB))
        self.client.post("/api/watched", json={"id": 550, "title": "Fight Club", "rating": 4}, headers=self.auth(CAROL))
        self.client.post("/api/watched", json={"id": 680, "title": "Pulp Fiction"}, headers=self.auth(BOB))

        rows = self.client.get("/api/watched/550/friends", headers=self.auth(ALICE)).json()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["email"], BOB)
        self.assertEqual(rows[0]["display_name"], "bob")
        self.assertEqual(rows[0]["rating"], 9)
        self.assertTrue(rows[0]["watched_at"])

    def test_visible_from_either_side(self):
        self.befriend(BOB, ALICE)
        self.client.post("/api/watched", json={"id": 550, "title": "Fight Club"}, headers=self.auth(ALICE))
        rows = self.client.get("/api/watched/550/friends", headers=self.auth(BOB)).json()
        self.assertEqual([row["email"] for row in rows], [ALICE])


if __name__ == "__main__":
    unittest.main()

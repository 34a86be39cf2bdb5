import uuid


def _acl(client, path, token, topic, operation="subscribe"):
    return client.post(
        f"/api/mqtt/{path}/acl",
        json={"operation": operation, "username": token, "topic": topic},
    )


class TestMqttAuth:
    def test_auth_accepts(self, sync_client):
        response = sync_client.post("/api/mqtt/auth", json={"username": "x", "password": "y"})

        assert response.status_code == 200
        assert response.json() == {"ok": True}


class TestHostAcl:
    def test_allow_own_topic(self, sync_client, codec, host_principal, host):
        response = _acl(
            sync_client, "hosts", codec.issue(host_principal), f"/hosts/{host.id}/commands"
        )

        assert response.status_code == 200
        assert response.json() == {"result": "allow"}

    def test_deny_other_host(self, sync_client, codec, host_principal, other_host):
        response = _acl(
            sync_client,
            "hosts",
            codec.issue(host_principal),
            f"/hosts/{other_host.id}/commands",
            operation="publish",
        )

        assert response.status_code == 403
        assert response.json() == {"result": "deny"}

    def test_deny_garbage_token(self, sync_client, host):
        response = _acl(sync_client, "hosts", "garbage", f"/hosts/{host.id}/commands")

        assert response.status_code == 403

    def test_rejects_unknown_operation(self, sync_client, codec, host_principal, host):
        response = _acl(
            sync_client,
            "hosts",
            codec.issue(host_principal),
            f"/hosts/{host.id}/commands",
            operation="delete",
        )

        assert response.status_code == 422


class TestUserAcl:
    def test_allow_node_in_org(self, sync_client, codec, user_principal, node):
        response = _acl(
            sync_client, "users", codec.issue(user_principal), f"/nodes/{node.id}/commands"
        )

        assert response.json() == {"result": "allow"}

    def test_deny_node_in_other_org(self, sync_client, codec, other_user_principal, node):
        response = _acl(
            sync_client, "users", codec.issue(other_user_principal), f"/nodes/{node.id}/commands"
        )

        assert response.status_code == 403

    def test_deny_unknown_node(self, sync_client, codec, user_principal):
        response = _acl(
            sync_client, "users", codec.issue(user_principal), f"/nodes/{uuid.uuid4()}/commands"
        )

        assert response.status_code == 403
        assert response.json() == {"result": "deny"}

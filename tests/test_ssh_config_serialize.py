from sshvault import ssh_config
from sshvault.models import Host


def test_serialize_full_host_in_fixed_order():
    host = Host(
        alias="web",
        label="Web",
        hostname="web.example.com",
        user="deploy",
        port=2222,
        identity_file="~/.ssh/id_ed25519",
        proxy_jump="bastion",
        forward_agent=True,
        icon="server.rack",
        sftp_path="/srv",
        ssh_init_path=False,
        extra_options={"ServerAliveInterval": "60", "Compression": "yes"},
        comment="# keep me",
    )

    assert ssh_config.serialize([host]) == (
        "# @label Web\n"
        "# @icon server.rack\n"
        "# @sftppath /srv\n"
        "# @sshinitpath no\n"
        "# keep me\n"
        "Host web\n"
        "    HostName web.example.com\n"
        "    User deploy\n"
        "    Port 2222\n"
        "    IdentityFile ~/.ssh/id_ed25519\n"
        "    ProxyJump bastion\n"
        "    ForwardAgent yes\n"
        "    Compression yes\n"
        "    ServerAliveInterval 60\n"
    )


def test_serialize_omits_empty_fields():
    assert ssh_config.serialize([Host(alias="bare")]) == "Host bare\n"


def test_serialize_ssh_init_path_only_written_with_sftp_path():
    text = ssh_config.serialize([Host(alias="a", ssh_init_path=False)])

    assert "@sshinitpath" not in text


def test_serialize_separates_stanzas_with_blank_line():
    text = ssh_config.serialize([Host(alias="a"), Host(alias="b")])

    assert text == "Host a\n\nHost b\n"


def test_serialize_empty_list():
    assert ssh_config.serialize([]) == ""


def test_serialize_drops_options_with_line_breaks(caplog):
    host = Host(alias="a", extra_options={"LocalCommand": "echo hi\nHost evil", "Compression": "yes"})

    text = ssh_config.serialize([host])

    assert "evil" not in text
    assert "    Compression yes" in text
    assert "line break" in caplog.text


def test_round_trip_preserves_hosts():
    hosts = [
        Host(alias="*", extra_options={"ServerAliveInterval": "30"}),
        Host(alias="web", label="Web", hostname="web", user="u", port=22, icon="globe"),
        Host(
            alias="db",
            hostname="10.0.0.2",
            sftp_path="/data",
            ssh_init_path=False,
            comment="# db host\n# second line",
            extra_options={"ProxyCommand": "ssh -W %h:%p -o Foo=bar jump"},
        ),
        Host(alias="jump", forward_agent=True, proxy_jump="bastion"),
    ]

    assert ssh_config.parse(ssh_config.serialize(hosts)) == hosts


def test_round_trip_is_stable_on_reserialize():
    text = (
        "# @label Alpha\n"
        "Host alpha\n"
        "    HostName alpha.example\n"
        "    Port 2200\n"
        "\n"
        "# note\n"
        "Host beta\n"
        "    User root\n"
    )

    once = ssh_config.serialize(ssh_config.parse(text))

    assert once == text
    assert ssh_config.serialize(ssh_config.parse(once)) == once


def test_sanitize_host_strips_control_characters():
    host = Host(
        alias="we\x00b",
        label="La\x1bbel",
        hostname="host\x07name",
        user="us\ber",
        extra_options={"\x01": "dropped", "Key\x02": "va\x03lue\twith tab"},
        comment="# one\x05\n# two",
        port=99999,
    )

    cleaned = ssh_config.sanitize_host(host)

    assert cleaned.alias == "web"
    assert cleaned.label == "Label"
    assert cleaned.hostname == "hostname"
    assert cleaned.user == "user"
    assert cleaned.extra_options == {"Key": "value\twith tab"}
    assert cleaned.comment == "# one\n# two"
    assert cleaned.port is None
    assert cleaned.id == host.id


def test_strip_control_chars_keeps_tab():
    assert ssh_config.strip_control_chars("a\tb\nc\rd") == "a\tbcd"


def test_sanitize_alias():
    assert ssh_config.sanitize_alias("my web server") == "my_web_server"
    assert ssh_config.sanitize_alias("plain") == "plain"


def test_serialize_comment_splits_on_newlines_only():
    host = Host(alias="a", comment="# one\x0c two\n# three")

    assert ssh_config.serialize([host]) == "# one\x0c two\n# three\nHost a\n"

"""PostgreSQL trigger reporting lobby_players changes with NOTIFY.

Every insert, update or delete on lobby_players sends
{"lobby_id": <id>, "op": "INSERT" | "UPDATE" | "DELETE"} on the
lobby_players_changes channel, which PostgresChangeNotifier listens on.
"""

from lobbysync.realtime.notifier import LOBBY_PLAYERS_CHANNEL

NOTIFY_FUNCTION_SQL = f"""
CREATE OR REPLACE FUNCTION notify_lobby_players_change() RETURNS trigger AS $$
DECLARE
    row_lobby_id BIGINT;
BEGIN
    IF TG_OP = 'DELETE' THEN
        row_lobby_id := OLD.lobby_id;
    ELSE
        row_lobby_id := NEW.lobby_id;
    END IF;
    PERFORM pg_notify(
        '{LOBBY_PLAYERS_CHANNEL}',
        json_build_object('lobby_id', row_lobby_id, 'op', TG_OP)::text
    );
    RETURN NULL;
END;
$$ LANGUAGE plpgsql
"""

DROP_TRIGGER_SQL = "DROP TRIGGER IF EXISTS lobby_players_notify ON lobby_players"

CREATE_TRIGGER_SQL = """
CREATE TRIGGER lobby_players_notify
AFTER INSERT OR UPDATE OR DELETE ON lobby_players
FOR EACH ROW EXECUTE FUNCTION notify_lobby_players_change()
"""

DROP_FUNCTION_SQL = "DROP FUNCTION IF EXISTS notify_lobby_players_change()"

INSTALL_STATEMENTS = (NOTIFY_FUNCTION_SQL, DROP_TRIGGER_SQL, CREATE_TRIGGER_SQL)
UNINSTALL_STATEMENTS = (DROP_TRIGGER_SQL, DROP_FUNCTION_SQL)

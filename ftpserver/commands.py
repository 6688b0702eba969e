import os
import time

from ftpserver.credentials import check_credentials
from ftpserver.data_channel import open_passive_channel, advertised_ip_for, pasv_reply
from ftpserver.paths import resolve, to_relative, parent_of, display_path

BUFFER_SIZE = 65536         # chunk size for RETR/STOR

SYNTAX_ERROR = "501 Syntax error in parameters or arguments."

# --- LOGIN ---

def cmd_USER(args, session):
    state = session.state
    if not args:
        session.reply(SYNTAX_ERROR)
        return
    name = args[0]
    if name.lower() == "anonymous" and session.config.anonymous_enabled:
        state.reset_login()
        state.is_anonymous = True
        state.authenticated = True
        print(f"[AUTH] Anonymous login from {session.client_ip}")
        session.reply("230 Anonymous access granted, restrictions may apply.")
        return
    state.reset_login()
    state.pending_username = name
    session.reply("331 User name okay, need password.")

def cmd_PASS(args, session):
    state = session.state
    if state.authenticated:
        session.reply("230 Already logged in.")
        return
    username = state.pending_username
    if check_credentials(session.config, username, " ".join(args)):
        state.authenticated = True
        print(f"[AUTH] User {username} logged in from {session.client_ip}")
        session.reply(f"230 Logged in as {username}.")
    else:
        state.reset_login()
        print(f"[AUTH] Failed login for {username!r} from {session.client_ip}")
        session.reply("530 Login incorrect.")

def cmd_QUIT(args, session):
    session.reply("221 Goodbye.")
    session.state.reset_login()
    return True

# --- DIRECTORIES ---

def cmd_PWD(args, session):
    session.reply(f'257 "{display_path(session.state.current_dir)}" is the current directory.')

def cmd_CWD(args, session):
    state = session.state
    root = session.config.root_directory
    if not args:
        session.reply(SYNTAX_ERROR)
        return
    try:
        new_path = resolve(root, state.current_dir, args[0])
    except PermissionError:
        session.reply("550 Access denied.")
        return
    if not os.path.isdir(new_path):
        session.reply("550 Failed to change directory.")
        return
    state.current_dir = to_relative(root, new_path)
    session.reply(f"250 Directory changed to {display_path(state.current_dir)}.")

def cmd_CDUP(args, session):
    state = session.state
    if not state.current_dir:
        # Already at root: report success, nothing changes
        session.reply("200 Already in the root directory.")
        return
    parent = parent_of(state.current_dir)
    if os.path.isdir(resolve(session.config.root_directory, "", "/" + parent)):
        state.current_dir = parent
        session.reply(f"200 Directory changed to {display_path(parent)}.")
    else:
        session.reply("550 Failed to change directory to parent.")

def cmd_MKD(args, session):
    root = session.config.root_directory
    if not args:
        session.reply(SYNTAX_ERROR)
        return
    try:
        path = resolve(root, session.state.current_dir, args[0])
        if os.path.exists(path):
            session.reply(f"550 Directory {args[0]} already exists.")
            return
        os.makedirs(path)
    except PermissionError:
        session.reply(f"550 No permission to create directory {args[0]}.")
        return
    except OSError as e:
        session.reply(f"550 Failed to create directory: {e.strerror}.")
        return
    session.reply(f'257 "{display_path(to_relative(root, path))}" directory created.')

def cmd_RMD(args, session):
    state = session.state
    root = session.config.root_directory
    if not args:
        session.reply(SYNTAX_ERROR)
        return
    try:
        target = resolve(root, state.current_dir, args[0])
        if target == root:
            session.reply("550 Cannot remove the root directory.")
            return
        if not os.path.isdir(target):
            session.reply("550 Directory not found.")
            return
        if os.listdir(target):
            session.reply(f"550 Directory {args[0]} is not empty.")
            return
        os.rmdir(target)
    except PermissionError:
        session.reply(f"550 No permission to remove directory {args[0]}.")
        return
    except OSError as e:
        session.reply(f"550 Failed to remove directory: {e.strerror}.")
        return

    removed = to_relative(root, target)
    if state.current_dir == removed or state.current_dir.startswith(removed + "/"):
        state.current_dir = parent_of(removed)
    session.reply(f"250 Directory {args[0]} removed.")

def cmd_DELE(args, session):
    if not args:
        session.reply(SYNTAX_ERROR)
        return
    try:
        path = resolve(session.config.root_directory, session.state.current_dir, args[0])
        if not os.path.isfile(path):
            session.reply(f"550 {args[0]}: No such file.")
            return
        os.remove(path)
    except PermissionError:
        session.reply(f"550 No permission to delete file {args[0]}.")
        return
    except OSError as e:
        session.reply(f"550 Failed to delete {args[0]}: {e.strerror}.")
        return
    session.reply(f"250 File {args[0]} has been deleted.")

def cmd_TYPE(args, session):
    if not args:
        session.reply(SYNTAX_ERROR)
        return
    a = args[0].upper()
    if a in ('A', 'I'):
        session.state.type = a
        session.reply(f"200 Type set to {a}.")
    else:
        session.reply("504 Type not supported.")

# --- PASSIVE MODE ---

def cmd_PASV(args, session):
    """
    Opens a passive listener and announces it with 227.
    No accept() here: the next LIST/RETR/STOR does it.
    """
    state = session.state
    config = session.config
    state.close_data_channel()

    channel = open_passive_channel(config.bind_ip, config.passive_ports)
    if channel is None:
        print(f"[PASV] No free port in range {config.passive_port_min}-{config.passive_port_max}")
        session.reply("425 Failed to find a free port.")
        return

    state.data_channel = channel
    server_ip = advertised_ip_for(config, session.client_socket)
    print(f"[PASV] Announcing {server_ip}:{channel.port} to {session.client_ip}")
    session.reply(pasv_reply(server_ip, channel.port))

# --- TRANSFERS ---

def take_channel(session):
    """Detaches the pending data channel, or answers 425 if PASV was not issued."""
    channel = session.state.take_data_channel()
    if channel is None:
        session.reply("425 Not in passive mode. Use PASV first.")
    return channel

def reject_transfer(session, channel, message):
    channel.close()
    session.reply(message)

def run_transfer(session, channel, opening, transfer):
    """
    150, accept the data connection, run transfer(conn), then 226 or 451.
    The channel and the data socket are closed whatever happens.
    """
    try:
        session.reply(opening)
        try:
            with channel.accept() as conn:
                transfer(conn)
        except (OSError, UnicodeError) as e:
            print(f"[DATA] Transfer aborted for {session.client_ip}: {e}")
            session.reply("451 Requested action aborted: local error in processing.")
        else:
            session.reply("226 Transfer complete.")
    finally:
        channel.close()

def format_list_line(name, st, is_dir):
    modified = time.strftime("%b %d %H:%M", time.localtime(st.st_mtime))
    if is_dir:
        return f"drwxr-xr-x 1 owner group 0 {modified} {name}"
    return f"-rw-r--r-- 1 owner group {st.st_size} {modified} {name}"

def list_directory(path):
    """Listing lines: files first, then directories, each in scandir order."""
    if os.path.isfile(path):
        return [format_list_line(os.path.basename(path), os.stat(path), False)]
    files, dirs = [], []
    with os.scandir(path) as entries:
        for entry in entries:
            try:
                is_dir = entry.is_dir()
                line = format_list_line(entry.name, entry.stat(), is_dir)
            except OSError:
                # Entry vanished while listing
                continue
            (dirs if is_dir else files).append(line)
    return files + dirs

def cmd_LIST(args, session):
    channel = take_channel(session)
    if channel is None:
        return
    # Clients such as "ls -la" send option flags, which are ignored
    paths = [a for a in args if not a.startswith("-")]
    try:
        target = resolve(session.config.root_directory, session.state.current_dir,
                         paths[0] if paths else ".")
    except PermissionError:
        reject_transfer(session, channel, "550 Access denied.")
        return
    if not os.path.exists(target):
        reject_transfer(session, channel, "550 No such file or directory.")
        return

    def send_listing(conn):
        lines = list_directory(target)
        # Names that are not valid UTF-8 go back to the client as their raw bytes
        conn.sendall("".join(line + "\r\n" for line in lines).encode(errors="surrogateescape"))

    run_transfer(session, channel, "150 Opening data connection for file list.", send_listing)

def cmd_RETR(args, session):
    if not args:
        session.reply(SYNTAX_ERROR)
        return
    channel = take_channel(session)
    if channel is None:
        return
    try:
        target = resolve(session.config.root_directory, session.state.current_dir, args[0])
    except PermissionError:
        reject_transfer(session, channel, "550 Attempt to access outside the root directory is not allowed.")
        return
    if not os.path.isfile(target):
        reject_transfer(session, channel, "550 File not found.")
        return

    def send_file(conn):
        with open(target, "rb") as f:
            for chunk in iter(lambda: f.read(BUFFER_SIZE), b""):
                conn.sendall(chunk)
        print(f"[DATA] Sent {target!r} to {session.client_ip}")

    run_transfer(session, channel, "150 Opening binary mode data connection for file transfer.", send_file)

def cmd_STOR(args, session):
    if not args:
        session.reply(SYNTAX_ERROR)
        return
    channel = take_channel(session)
    if channel is None:
        return
    try:
        target = resolve(session.config.root_directory, session.state.current_dir, args[0])
    except PermissionError:
        reject_transfer(session, channel, "550 Attempt to access outside the root directory is not allowed.")
        return
    if os.path.isdir(target) or not os.path.isdir(os.path.dirname(target)):
        reject_transfer(session, channel, f"550 Cannot store {args[0]}: invalid target.")
        return

    def receive_file(conn):
        with open(target, "wb") as f:
            for chunk in iter(lambda: conn.recv(BUFFER_SIZE), b""):
                f.write(chunk)
        print(f"[DATA] Stored {target!r} from {session.client_ip}")

    run_transfer(session, channel, "150 Opening binary mode data connection for file upload.", receive_file)

class SessionState:
    """Per-connection state. Owned by one Session, never shared between threads."""

    def __init__(self):
        self.authenticated = False
        self.pending_username = None
        self.is_anonymous = False
        self.current_dir = ""       # relative to root, '' is the root itself
        self.type = 'I'             # acknowledged only, transfers are always raw bytes
        self.data_channel = None

    @property
    def username(self):
        if self.is_anonymous:
            return "anonymous"
        return self.pending_username if self.authenticated else None

    def reset_login(self):
        self.authenticated = False
        self.pending_username = None
        self.is_anonymous = False

    def replace_data_channel(self, channel):
        self.close_data_channel()
        self.data_channel = channel

    def take_data_channel(self):
        """Detaches the pending channel so it can be used exactly once."""
        channel, self.data_channel = self.data_channel, None
        return channel

    def close_data_channel(self):
        if self.data_channel is not None:
            self.data_channel.close()
            self.data_channel = None

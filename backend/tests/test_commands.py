from backend.app.core.commands import VoiceCommand, parse_command


def test_navigation_keywords():
    assert parse_command("Next step please") == VoiceCommand.NEXT
    assert parse_command("go on") == VoiceCommand.NEXT
    assert parse_command("go back") == VoiceCommand.PREVIOUS
    assert parse_command("Can you repeat that?") == VoiceCommand.REPEAT
    assert parse_command("wait a second") == VoiceCommand.PAUSE
    assert parse_command("ok, continue") == VoiceCommand.RESUME
    assert parse_command("Start.") == VoiceCommand.START
    assert parse_command("let's start cooking") == VoiceCommand.START


def test_complete_takes_priority():
    assert parse_command("next, and then we're all done") == VoiceCommand.COMPLETE
    assert parse_command("I'm finished") == VoiceCommand.COMPLETE


def test_session_commands():
    assert parse_command("hey chef") == VoiceCommand.HELP
    assert parse_command("stop listening") == VoiceCommand.STOP_LISTENING
    assert parse_command("goodbye") == VoiceCommand.EXIT


def test_questions_are_unknown():
    assert parse_command("what can I use instead of butter") == VoiceCommand.UNKNOWN
    assert parse_command("should I remove the bay leaves") == VoiceCommand.UNKNOWN
    assert parse_command("is the restart of the oven needed") == VoiceCommand.UNKNOWN
    assert parse_command("") == VoiceCommand.UNKNOWN

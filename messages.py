# User-facing texts. HTML parse mode, relayed messages are sent raw.

WELCOME_MSG = """
🌟 Welcome to <b>Mystery Chat</b>! Find your spark anonymously 😎
📝 Only text messages are relayed.
Choose your gender:
"""

HELP_MSG = """
<b>📚 Help Guide</b>

/start - Choose your gender and get started
/next - Skip to a new partner
/stop - End the current chat
/cancel - Stop searching

Only text messages are supported.
"""

GENDER_LABELS = {
    "male": "👨 Male",
    "female": "👩 Female",
}

GENDER_SET_MSG = "🎉 Gender set: <b>{gender}</b>! Ready to start chatting? 💬"
SEARCHING_MSG = "🔎 Searching for your spark... Stay tuned! 😎"
MATCHED_MSG = "✨ Partner found! Say hi 💬\n(/stop - leave, /next - new chat)"
CHAT_ENDED_MSG = "🛑 Chat ended. Want a new spark? Press /start!"
PARTNER_LEFT_MSG = "🛑 Your partner ended the chat. Want a new one? Press /start!"
SEARCH_CANCELED_MSG = "❌ Search canceled."
SEARCH_WITHDRAWN_MSG = "↩️ Search stopped because you changed your gender."

NO_GENDER_MSG = "Choose your gender first with /start."
ALREADY_IN_CHAT_MSG = "⚠️ You're already in a chat! Use /stop or /next."
ALREADY_SEARCHING_MSG = "⏳ Still searching, please wait while we find you a partner..."
NOT_IN_CHAT_MSG = "⚠️ You're not in a chat. Press /start or 'Start Chat'!"
NOT_SEARCHING_MSG = "⚠️ You're not searching right now."
TEXT_ONLY_MSG = "❌ This bot only supports text messages."

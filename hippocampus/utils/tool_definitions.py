# Tool definitions for the Hippocampus memory plugin
# Registered with the host by HippocampusPlugin; executed by services.memory_tools.MemoryTools

SCOPE_ENUM = ["shared", "private", "all"]

SEARCH_TOOL = {
    "name": "hippocampus_search",
    "label": "Hippocampus Search",
    "description": "Search long-term memories in Hippocampus.",
    "parameters": {
        "type": "object",
        "properties": {
            "query": {"type": "string", "description": "What to look for"},
            "limit": {"type": "number", "minimum": 1, "maximum": 50, "default": 5},
            "scope": {"type": "string", "enum": SCOPE_ENUM},
        },
        "required": ["query"],
    },
}

STORE_TOOL = {
    "name": "hippocampus_store",
    "label": "Hippocampus Store",
    "description": "Store important information in Hippocampus memory.",
    "parameters": {
        "type": "object",
        "properties": {
            "text": {"type": "string", "description": "Information to remember"},
            "category": {
                "type": "string",
                "enum": ["preference", "workflow", "project_decision", "fact"],
            },
            "scope": {"type": "string", "enum": ["shared", "private", "auto"]},
        },
        "required": ["text"],
    },
}

FORGET_TOOL = {
    "name": "hippocampus_forget",
    "label": "Hippocampus Forget",
    "description": "Forget a memory by id or search query.",
    "parameters": {
        "type": "object",
        "properties": {
            "memoryId": {"type": "string"},
            "query": {"type": "string"},
            "scope": {"type": "string", "enum": SCOPE_ENUM},
        },
    },
}

PROFILE_TOOL = {
    "name": "hippocampus_profile",
    "label": "Hippocampus Profile",
    "description": "Show inferred static and dynamic memory profile from recalled memories.",
    "parameters": {
        "type": "object",
        "properties": {
            "query": {"type": "string"},
            "scope": {"type": "string", "enum": SCOPE_ENUM},
        },
    },
}

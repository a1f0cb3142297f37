"""
File kinds keyed by extension.

One lookup gives the icon, the editor syntax id and, for the extensions
that have one, the boilerplate a newly created file starts with.
"""

from dataclasses import dataclass
from datetime import date
from pathlib import PurePosixPath
from typing import Dict, Optional


@dataclass(frozen=True)
class FileType:
    icon: str
    language: str
    template: Optional[str] = None


HTML_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Document</title>
    <style>
        body {
            font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
            line-height: 1.6;
            color: #333;
            margin: 0;
            padding: 20px;
        }

        .container {
            max-width: 600px;
            margin: 0 auto;
            text-align: center;
        }
    </style>
</head>
<body>
    <div class="container">
        <h1>Welcome!</h1>
        <p>Your new HTML file is ready.</p>
    </div>
</body>
</html>
"""

CSS_TEMPLATE = """/* Reset */
* {
    margin: 0;
    padding: 0;
    box-sizing: border-box;
}

body {
    font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
    line-height: 1.6;
    color: #333;
    background: #f8fafc;
}

.container {
    max-width: 1200px;
    margin: 0 auto;
    padding: 2rem;
}
"""

JS_TEMPLATE = """// JavaScript
function greet(name) {
    return `Hello, ${name}!`;
}

class App {
    constructor() {
        this.init();
    }

    init() {
        document.addEventListener('DOMContentLoaded', () => {
            console.log('DOM loaded');
        });
    }
}

const app = new App();
console.log(greet('World'));
"""

TS_TEMPLATE = """// TypeScript
interface User {
    id: number;
    name: string;
    isActive: boolean;
}

class UserManager {
    private users: User[] = [];

    addUser(user: Omit<User, 'id'>): User {
        const newUser: User = { id: this.users.length + 1, ...user };
        this.users.push(newUser);
        return newUser;
    }

    getActiveUsers(): User[] {
        return this.users.filter(user => user.isActive);
    }
}

const manager = new UserManager();
console.log(manager.addUser({ name: 'Ada', isActive: true }));
"""

JSX_TEMPLATE = """import React, { useState } from 'react';

const App = () => {
    const [count, setCount] = useState(0);

    return (
        <div className="app">
            <h1>Hello React!</h1>
            <button onClick={() => setCount(count - 1)}>-</button>
            <span className="count">{count}</span>
            <button onClick={() => setCount(count + 1)}>+</button>
        </div>
    );
};

export default App;
"""

TSX_TEMPLATE = """import React, { useState } from 'react';

interface CounterProps {
    initialValue?: number;
    step?: number;
}

const Counter: React.FC<CounterProps> = ({ initialValue = 0, step = 1 }) => {
    const [count, setCount] = useState<number>(initialValue);

    return (
        <div className="counter">
            <button onClick={() => setCount(prev => prev - step)}>-</button>
            <span className="count-value">{count}</span>
            <button onClick={() => setCount(prev => prev + step)}>+</button>
        </div>
    );
};

const App: React.FC = () => <Counter />;

export default App;
"""

JSON_TEMPLATE = """{
  "name": "my-project",
  "version": "1.0.0",
  "description": "",
  "main": "index.js",
  "scripts": {
    "start": "node index.js",
    "test": "jest"
  },
  "license": "MIT",
  "dependencies": {},
  "devDependencies": {}
}
"""

MD_TEMPLATE = """# {title}

Start writing your content here...

## Notes

- First point
- Second point
"""


FILE_TYPES: Dict[str, FileType] = {
    "html": FileType("code", "html", HTML_TEMPLATE),
    "htm": FileType("code", "html"),
    "css": FileType("braces", "css", CSS_TEMPLATE),
    "scss": FileType("braces", "css"),
    "sass": FileType("braces", "css"),
    "js": FileType("file-code", "javascript", JS_TEMPLATE),
    "jsx": FileType("file-code", "javascript", JSX_TEMPLATE),
    "ts": FileType("file-code", "typescript", TS_TEMPLATE),
    "tsx": FileType("file-code", "typescript", TSX_TEMPLATE),
    "json": FileType("file-json", "json", JSON_TEMPLATE),
    "md": FileType("file-text", "markdown", MD_TEMPLATE),
    "mdx": FileType("file-text", "markdown"),
    "py": FileType("file-code", "python"),
    "java": FileType("file-code", "java"),
    "c": FileType("file-code", "cpp"),
    "cpp": FileType("file-code", "cpp"),
    "php": FileType("file-code", "php"),
    "sql": FileType("database", "sql"),
    "png": FileType("image", "plaintext"),
    "jpg": FileType("image", "plaintext"),
    "jpeg": FileType("image", "plaintext"),
    "gif": FileType("image", "plaintext"),
    "svg": FileType("image", "xml"),
    "webp": FileType("image", "plaintext"),
    "config": FileType("settings", "plaintext"),
    "conf": FileType("settings", "plaintext"),
    "env": FileType("settings", "plaintext"),
}

DEFAULT_TYPE = FileType("file", "plaintext")
DIRECTORY_ICON = "folder"
DIRECTORY_OPEN_ICON = "folder-open"


def extension(file_name: str) -> str:
    """Lower-cased extension without the dot, '' when there is none."""
    suffix = PurePosixPath(file_name).suffix
    return suffix[1:].lower() if suffix else ""


def file_type(file_name: str) -> FileType:
    return FILE_TYPES.get(extension(file_name), DEFAULT_TYPE)


def language_for(file_name: str) -> str:
    return file_type(file_name).language


def icon_for(file_name: str, is_dir: bool = False, expanded: bool = False) -> str:
    if is_dir:
        return DIRECTORY_OPEN_ICON if expanded else DIRECTORY_ICON
    return file_type(file_name).icon


def default_content(file_name: str) -> str:
    """
    Boilerplate for a newly created file.

    Markdown files get their base name as the heading; extensions without
    a template get a short comment stub.
    """
    kind = file_type(file_name)
    if kind.template is None:
        return (
            f"// {file_name}\n"
            f"// Created on {date.today().isoformat()}\n"
        )
    if kind.language == "markdown":
        return kind.template.replace("{title}", PurePosixPath(file_name).stem)
    return kind.template

import logging
import typing
from pathlib import Path

from pydantic import ValidationError

from playground_progress.models.level_definition_models import LevelCatalogModel, LevelDefinition
from playground_progress.utils.aws_env_vars import get_level_catalog_path
from playground_progress.utils.base_types import LevelId

_LOGGER = logging.getLogger(__name__)
_LOGGER.setLevel(logging.INFO)

_BUILTIN_LEVELS: list[dict[str, typing.Any]] = [
    {
        "levelId": 1,
        "title": "HTML & CSS Fundamentals",
        "totalExercises": 5,
        "predicates": {
            1: {
                "rules": [{"required": ["<!doctype html>", "<html", "<head", "<body", "</html>"]}],
                "successMessage": "Great! You created a proper HTML structure with DOCTYPE, html, head, and body tags.",
                "failureHint": "Try including DOCTYPE, html, head, and body tags in your HTML structure.",
            },
            2: {
                "rules": [{"required": ["<h1", "<p", "<a href"], "anyOf": [["<ul", "<ol"]]}],
                "successMessage": "Excellent! You used various HTML elements like headings, paragraphs, lists, and links.",
                "failureHint": "Try using different HTML elements: headings (h1-h6), paragraphs (p), lists (ul, li), "
                "and links (a).",
            },
            3: {
                "rules": [{"required": ["<style>", "color"], "anyOf": [["h1", "p"]]}],
                "successMessage": "Perfect! You added CSS styling with internal stylesheets and basic selectors.",
                "failureHint": "Try adding CSS using the <style> tag in the head section and target elements with "
                "selectors.",
            },
            4: {
                "rules": [{"required": ["#main-title", ".intro", ".content p", "span.highlight"]}],
                "successMessage": "Awesome! You used different CSS selectors including element, class, and ID selectors.",
                "failureHint": "Try using different selectors: # for IDs, . for classes, and element selectors.",
            },
            5: {
                "rules": [{"required": ["margin", "padding"], "anyOf": [["border", "width"]]}],
                "successMessage": "Fantastic! You applied the CSS box model with margin, padding, and border properties.",
                "failureHint": "Try using box model properties like margin, padding, border, width, and height.",
            },
        },
        "badgeRules": [
            {"badgeId": "first-steps", "trigger": "exercise-completed:1", "title": "First Steps"},
            {"badgeId": "css-artist", "trigger": "exercise-completed:3", "title": "CSS Artist"},
        ],
    },
    {
        "levelId": 2,
        "title": "JavaScript Fundamentals",
        "totalExercises": 5,
        "predicates": {
            1: {
                "rules": [
                    {
                        "field": "javascript",
                        "required": ["let", "console.log", "[", "]"],
                        "anyOf": [['"', "'"]],
                    }
                ],
                "successMessage": "Great! You declared variables with different data types and used console.log.",
                "failureHint": "Try declaring variables with let/const, use different data types (string, number, "
                "boolean, array), and log them with console.log().",
            },
            2: {
                "rules": [{"field": "javascript", "required": ["function", "=>", "return", "console.log"]}],
                "successMessage": "Excellent! You created both function declarations and arrow functions.",
                "failureHint": "Try creating a function declaration with the function keyword and an arrow function. "
                "Make sure to call both functions.",
            },
            3: {
                "rules": [
                    {"field": "html", "required": ["id=", "class="]},
                    {"field": "javascript", "required": ["getelementbyid", "queryselector", "addeventlistener"]},
                ],
                "successMessage": "Perfect! You used DOM methods to select elements and added event listeners.",
                "failureHint": "Try using getElementById(), querySelector(), addEventListener(), and modify element "
                "properties.",
            },
            4: {
                "rules": [
                    {
                        "field": "javascript",
                        "required": ["[", "]", "console.log"],
                        "anyOf": [["for", "foreach", "map"]],
                    }
                ],
                "successMessage": "Awesome! You worked with arrays and used different loop methods.",
                "failureHint": "Try creating an array, using for loop, forEach(), and map() methods.",
            },
            5: {
                "rules": [{"field": "javascript", "required": ["{", "}", "function", "this.", "console.log"]}],
                "successMessage": "Fantastic! You created an object with properties and methods.",
                "failureHint": "Try creating an object with properties, accessing them with dot notation, and adding "
                "a method.",
            },
        },
        "badgeRules": [
            {"badgeId": "javascript-ninja", "trigger": "exercise-completed:5", "title": "JavaScript Ninja"},
        ],
    },
    {
        "levelId": 3,
        "title": "React Fundamentals",
        "totalExercises": 5,
        "predicates": {
            1: {
                "rules": [{"field": "jsx", "required": ["function", "return", "<", ">", "reactdom.render"]}],
                "successMessage": "Great! You created a React component with JSX and rendered it to the DOM.",
                "failureHint": "Try creating a function component that returns JSX and use ReactDOM.render() to "
                "display it.",
            },
            2: {
                "rules": [
                    {"field": "jsx", "required": ["props", "{", "}", "<", ">"], "anyOf": [["name=", "age="]]},
                ],
                "successMessage": "Excellent! You used props to pass data between components.",
                "failureHint": "Try creating a component that accepts props and use them in the JSX. Pass different "
                "props when using the component.",
            },
            3: {
                "rules": [{"field": "jsx", "required": ["usestate", "setcount", "onclick", "{", "}"]}],
                "successMessage": "Perfect! You used the useState hook to manage component state.",
                "failureHint": "Try using useState() to create state variables and setState functions. Use the state "
                "in your JSX and update it with event handlers.",
            },
            4: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": ["usestate", "set", "e.", "preventdefault"],
                        "anyOf": [["onclick", "onchange", "onsubmit"]],
                    }
                ],
                "successMessage": "Awesome! You handled events and managed state updates properly.",
                "failureHint": "Try creating event handlers for user interactions like onClick, onChange, onSubmit. "
                "Use setState to update the component state.",
            },
            5: {
                "rules": [
                    {"field": "jsx", "required": ["useeffect", "setinterval", "clearinterval", "return", "[]"]},
                ],
                "successMessage": "Fantastic! You used the useEffect hook to manage side effects.",
                "failureHint": "Try using useEffect() to perform side effects. Remember to include dependencies array "
                "and cleanup functions when needed.",
            },
        },
        "badgeRules": [
            {"badgeId": "react-master", "trigger": "exercise-completed:5", "title": "React Master"},
        ],
    },
    {
        "levelId": 4,
        "title": "Advanced React",
        "totalExercises": 5,
        "predicates": {
            1: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": ["function use", "usestate", "useeffect", "return"],
                        "anyOf": [["uselocalstorage", "useapi"]],
                    }
                ],
                "successMessage": "Excellent! You created custom hooks that extract and share logic between "
                "components.",
                "failureHint": 'Try creating custom hooks that start with "use" and return values that components can '
                "use. Include useState and useEffect in your hooks.",
            },
            2: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": ["createcontext", "context.provider", "usecontext", "value=", "function usetheme"],
                    }
                ],
                "successMessage": "Perfect! You implemented React Context to share data without prop drilling.",
                "failureHint": "Try using createContext(), Context.Provider, and useContext() to share data across "
                "components. Create a custom hook for context usage.",
            },
            3: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": ["usereducer", "function", "reducer", "switch", "case", "dispatch", "action.type"],
                    }
                ],
                "successMessage": "Awesome! You used useReducer to manage complex state with predictable updates.",
                "failureHint": "Try using useReducer with a reducer function that handles different action types. "
                "Dispatch actions with type and payload properties.",
            },
            4: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": ["memo", "[]"],
                        "anyOf": [["usememo", "usecallback"], ["expensive", "calculation"]],
                    }
                ],
                "successMessage": "Fantastic! You optimized React performance with useMemo, useCallback, and "
                "React.memo.",
                "failureHint": "Try using useMemo for expensive calculations, useCallback for memoized functions, and "
                "React.memo for component memoization.",
            },
            5: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": [
                            "class",
                            "extends component",
                            "getderivedstatefromerror",
                            "componentdidcatch",
                            "errorboundary",
                            "haserror",
                        ],
                    }
                ],
                "successMessage": "Great! You implemented error boundaries to catch and handle JavaScript errors "
                "gracefully.",
                "failureHint": "Try creating a class component with getDerivedStateFromError and componentDidCatch "
                "methods. Wrap components that might throw errors.",
            },
        },
        "badgeRules": [
            {"badgeId": "advanced-react-master", "trigger": "exercise-completed:5", "title": "Advanced React Master"},
        ],
    },
    {
        "levelId": 5,
        "title": "Full-Stack Integration",
        "totalExercises": 5,
        "predicates": {
            1: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": ["fetch", "async", "await", "useeffect", "loading", "error"],
                        "anyOf": [["api", "service"]],
                    }
                ],
                "successMessage": "Excellent! You implemented API integration with proper error handling and loading "
                "states.",
                "failureHint": "Try creating API service functions, using fetch() for HTTP requests, and implementing "
                "custom hooks for data fetching.",
            },
            2: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": ["createcontext", "useeffect", "localstorage", "auth"],
                        "anyOf": [["login", "logout"]],
                    }
                ],
                "successMessage": "Perfect! You implemented authentication with Context API, login/logout "
                "functionality, and protected components.",
                "failureHint": "Try using Context API for auth state, implementing login/logout functions, and "
                "creating protected components.",
            },
            3: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": ["usereducer", "action", "dispatch", "context"],
                        "anyOf": [["store", "provider"]],
                    }
                ],
                "successMessage": "Awesome! You implemented complex state management with useReducer, action "
                "creators, and global state sharing.",
                "failureHint": "Try using useReducer for complex state, creating action types and action creators, "
                "and using Context API for global state.",
            },
            4: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": ["useeffect", "interval"],
                        "anyOf": [["websocket", "polling"], ["real", "live"]],
                    }
                ],
                "successMessage": "Fantastic! You implemented real-time features with WebSockets and polling for live "
                "data updates.",
                "failureHint": "Try implementing WebSocket connections, polling mechanisms, and real-time data "
                "handling.",
            },
            5: {
                "rules": [
                    {
                        "field": "jsx",
                        "required": ["memo", "usememo", "performance"],
                        "anyOf": [["production", "optimization"]],
                    }
                ],
                "successMessage": "Great! You implemented production optimizations with React.memo, performance "
                "monitoring, and deployment readiness.",
                "failureHint": "Try using React.memo for optimization, implementing performance monitoring, and "
                "preparing for production deployment.",
            },
        },
        "badgeRules": [
            {"badgeId": "full-stack-master", "trigger": "exercise-completed:5", "title": "Full-Stack Master"},
        ],
    },
]


class LevelCatalog:
    """
    Read-only registry of level definitions, one generic definition per level.
    """

    def __init__(self, levels: typing.Iterable[LevelDefinition]) -> None:
        self._levels: dict[LevelId, LevelDefinition] = {}
        for level in levels:
            if level.levelId in self._levels:
                raise ValueError(f"Duplicate level id in catalog: {level.levelId}")
            self._levels[level.levelId] = level

    @classmethod
    def builtin(cls) -> "LevelCatalog":
        return cls(LevelCatalogModel.model_validate({"levels": _BUILTIN_LEVELS}).levels)

    @classmethod
    def from_json_file(cls, path: typing.Union[str, Path]) -> "LevelCatalog":
        """
        Loads a catalog file of the form {"levels": [LevelDefinition, ...]}.

        :raises ValidationError: If the file does not describe a valid catalog
        :raises OSError: If the file cannot be read
        """
        _LOGGER.info(f"Loading level catalog from {path}")
        text = Path(path).read_text(encoding="utf-8")
        try:
            catalog = LevelCatalogModel.model_validate_json(text)
        except ValidationError as ve:
            _LOGGER.error(f"Invalid level catalog at {path}: {ve}")
            raise
        return cls(catalog.levels)

    @classmethod
    def from_environment(cls) -> "LevelCatalog":
        catalog_path = get_level_catalog_path()
        if catalog_path:
            return cls.from_json_file(catalog_path)
        return cls.builtin()

    def get(self, level_id: LevelId) -> typing.Optional[LevelDefinition]:
        return self._levels.get(level_id)

    def levels(self) -> list[LevelDefinition]:
        return [self._levels[level_id] for level_id in sorted(self._levels)]

    def __len__(self) -> int:
        return len(self._levels)

    def __contains__(self, level_id: object) -> bool:
        return level_id in self._levels

"""
Stub browser environment installed into every sandbox before page scripts run.

The page's inline scripts expect a browser: a module loader, the ServerJS
payload handler, the BigPipe pagelet loader and assorted DOM globals. This
file fakes just enough of that for the scripts to run to completion. The
modules that carry session facts forward them to the bridge functions
(``setUserData`` and friends), so the page's own dispatch does the extraction.
Everything else is an inert placeholder.

When messenger.com renames a define or moves a fact, this is the file to
update.
"""

# ServerJS define name -> how its payload maps onto bridge calls.
# A define entry is [name, deps, data, featureIndex].
USER_DEFINE = "CurrentUserInitialData"
TOKEN_DEFINE = "DTSGInitialData"
SITE_DEFINE = "SiteData"
SPRINKLE_DEFINE = "SprinkleConfig"

# require() entry that carries the anonymous browser cookie:
# ["CookieCore", "setWithoutChecks", [], ["_js_datr", VALUE, ...]]
COOKIE_MODULE = "CookieCore"
COOKIE_NAME = "_js_datr"

RUNTIME_JS = r"""
var __noop = function () {};

var __report = {
    define: function (entry) {
        if (!entry || typeof entry.length !== "number") {
            return;
        }
        var name = entry[0], data = entry[2] || {}, index = entry[3];
        if (typeof index === "number") {
            setFeatureFlag(index);
        }
        switch (name) {
        case "%(user)s":
            setUserData(data.USER_ID, data.NAME, data.SHORT_NAME);
            break;
        case "%(token)s":
            setAuthToken(data.token);
            break;
        case "%(site)s":
            setSiteData("__hs", data.haste_session, "__pc", data.pkg_cohort);
            break;
        case "%(sprinkle)s":
            setSprinkleName(data.param_name);
            break;
        }
    },
    require: function (entry) {
        if (!entry || typeof entry.length !== "number") {
            return;
        }
        var args = entry[3] || [];
        if (entry[0] === "%(cookie_module)s" && args[0] === "%(cookie_name)s") {
            setSessionCookie(args[1]);
        } else if (entry[0] === "Bootloader" && entry[1] === "handlePayload") {
            Bootloader.handlePayload(args[0]);
        }
    },
    payload: function (payload) {
        if (!payload) {
            return;
        }
        var i, defines = payload.define || [], requires = payload.require || [];
        for (i = 0; i < defines.length; i++) {
            __report.define(defines[i]);
        }
        for (i = 0; i < requires.length; i++) {
            __report.require(requires[i]);
        }
    }
};

var Bootloader = {
    handlePayload: function (payload) {
        var map = (payload && payload.rsrcMap) || {};
        for (var key in map) {
            if (map[key] && map[key].src) {
                setResource(key, map[key].src);
            }
        }
    },
    loadModules: __noop,
    done: __noop,
    enableBootload: __noop,
    markComponentsAsImmediate: __noop
};

var ServerJS = function () {};
ServerJS.prototype = {
    handle: function (payload) {
        __report.payload(payload);
        return this;
    },
    handleWithCustomApplyEach: function (apply, payload) {
        __report.payload(payload);
        return this;
    },
    handleDefines: function (defines) {
        __report.payload({define: defines});
        return this;
    },
    setRelativeTo: function () {
        return this;
    },
    cleanup: __noop
};

var __genericModule = {
    guard: function (fn) {
        return fn;
    },
    handle: __noop,
    handleDefines: __noop,
    handleServerJS: function (payload) {
        __report.payload(payload);
    },
    setPageID: __noop,
    mark: __noop,
    log: __noop,
    setTimeout: __noop,
    dispatch: __noop
};

var __modules = {
    ServerJS: ServerJS,
    Bootloader: Bootloader
};

var require = function (id) {
    return __modules.hasOwnProperty(id) ? __modules[id] : __genericModule;
};

var requireLazy = function (deps, callback) {
    if (typeof callback === "function") {
        var resolved = [];
        for (var i = 0; i < (deps || []).length; i++) {
            resolved.push(require(deps[i]));
        }
        callback.apply(null, resolved);
    }
};

var __d = function (name, deps, factory) {
    if (typeof name !== "string" || name.slice(-8) !== ".graphql") {
        return;
    }
    var module = {exports: {}};
    if (typeof factory === "function") {
        factory(undefined, require, undefined, undefined, module, module.exports);
    }
    var id = module.exports;
    if (id && typeof id === "object") {
        id = id.id || (id.params && id.params.id);
    }
    if (id !== undefined && id !== null) {
        setDocumentID(name.slice(0, -8), id);
    }
};

var bigPipe = {
    onPageletArrive: function (data) {
        if (data && data.jsmods) {
            __report.payload(data.jsmods);
        }
    },
    beforePageletArrive: __noop,
    setPageID: __noop
};
var BigPipe = function () {
    return bigPipe;
};

var CavalryLogger = {
    setPageID: __noop,
    start_js: __noop,
    getInstance: function () {
        return CavalryLogger;
    }
};

var __element = {
    appendChild: __noop,
    removeChild: __noop,
    setAttribute: __noop,
    getAttribute: function () {
        return null;
    },
    addEventListener: __noop,
    removeEventListener: __noop,
    style: {},
    classList: {add: __noop, remove: __noop, contains: function () { return false; }}
};

var document = {
    cookie: "",
    readyState: "complete",
    body: __element,
    head: __element,
    documentElement: __element,
    createElement: function () {
        return __element;
    },
    getElementById: function () {
        return null;
    },
    getElementsByTagName: function () {
        return [];
    },
    querySelector: function () {
        return null;
    },
    querySelectorAll: function () {
        return [];
    },
    addEventListener: __noop,
    removeEventListener: __noop
};
var navigator = {userAgent: "", language: "en-US", platform: "", cookieEnabled: true};
var location = {href: "", protocol: "https:", host: "", hostname: "", pathname: "/", search: "", hash: ""};
var console = {log: __noop, info: __noop, warn: __noop, error: __noop, debug: __noop};
var setTimeout = function () { return 0; };
var clearTimeout = __noop;
var setInterval = function () { return 0; };
var clearInterval = __noop;
var requestAnimationFrame = function () { return 0; };
var performance = {now: function () { return 0; }, mark: __noop, measure: __noop, timing: {}};
var Image = function () {};
var XMLHttpRequest = function () {};
XMLHttpRequest.prototype = {open: __noop, send: __noop, setRequestHeader: __noop};
var HTMLElement = function () {};
var Event = function () {};
var localStorage = {getItem: function () { return null; }, setItem: __noop, removeItem: __noop};
var sessionStorage = localStorage;

var window = {
    document: document,
    navigator: navigator,
    location: location,
    console: console,
    require: require,
    requireLazy: requireLazy,
    __d: __d,
    bigPipe: bigPipe,
    setTimeout: setTimeout,
    clearTimeout: clearTimeout,
    addEventListener: __noop,
    removeEventListener: __noop,
    performance: performance,
    localStorage: localStorage,
    sessionStorage: sessionStorage
};
var self = window;
var top = window;
var parent = window;
""" % {
    "user": USER_DEFINE,
    "token": TOKEN_DEFINE,
    "site": SITE_DEFINE,
    "sprinkle": SPRINKLE_DEFINE,
    "cookie_module": COOKIE_MODULE,
    "cookie_name": COOKIE_NAME,
}
